"""Custom attribute decoder (ECMA-335 II.22.10 and II.23.3)."""

from __future__ import annotations

from typing import Any

from winmd_tables.attributes import (
    ArgumentValue,
    CustomAttributeValue,
    FieldCustomAttributeData,
    MethodCustomAttributeData,
    ParamCustomAttributeData,
    TypeCustomAttributeData,
)
from winmd_tables.catalog import FIELD_CATALOG, METHOD_CATALOG, PARAM_CATALOG, TYPE_CATALOG, AttributeCatalog
from winmd_tables.coded_index import CodedIndexKind, encode
from winmd_tables.cursor import ByteCursor
from winmd_tables.errors import FormatError, MetadataError, UnknownAttributeError, UnsupportedFeatureError
from winmd_tables.logging import get_logger
from winmd_tables.metadata import MetadataStore
from winmd_tables.resolver import MethodSignature, TypeResolver
from winmd_tables.tables import CustomAttributeRow, MemberRefRow, MetadataTable
from winmd_tables.types import ArrayType, ElementType, LazyString, QualifiedName, Type

logger = get_logger("decoder")

CUSTOM_ATTRIBUTE_PROLOG = 0x0001
NULL_STRING_MARKER = 0xFF


class ExtractionContext:
    """What an extractor sees of one attribute: its name, decoded value and helpers."""

    def __init__(
        self,
        decoder: CustomAttributeDecoder,
        attribute: CustomAttributeRow,
        member_ref: MemberRefRow,
        name: QualifiedName,
        signature: MethodSignature,
        value: CustomAttributeValue,
    ) -> None:
        self.decoder = decoder
        self.attribute = attribute
        self.member_ref = member_ref
        self.name = name
        self.signature = signature
        self.value = value

    def lazy_string(self) -> LazyString:
        """The value of an attribute whose constructor takes a single string."""
        return self.decoder.single_string(self.signature, self.value)


class CustomAttributeDecoder:
    """Extracts per-category facts from the custom attributes of table rows."""

    def __init__(self, store: MetadataStore, resolver: TypeResolver | None = None) -> None:
        self.store = store
        self.resolver = resolver if resolver is not None else TypeResolver(store)
        self.string_type = self.resolver.get_primitive(ElementType.STRING)

    def get_type_def_attributes(self, index: int) -> TypeCustomAttributeData:
        """Get the attribute data of a 0-based TypeDef row."""
        return self._extract(MetadataTable.TYPE_DEF, index, TYPE_CATALOG)

    def get_method_def_attributes(self, index: int) -> MethodCustomAttributeData:
        """Get the attribute data of a 0-based MethodDef row."""
        return self._extract(MetadataTable.METHOD_DEF, index, METHOD_CATALOG)

    def get_field_attributes(self, index: int) -> FieldCustomAttributeData:
        """Get the attribute data of a 0-based Field row."""
        return self._extract(MetadataTable.FIELD, index, FIELD_CATALOG)

    def get_param_attributes(self, index: int) -> ParamCustomAttributeData:
        """Get the attribute data of a 0-based Param row."""
        return self._extract(MetadataTable.PARAM, index, PARAM_CATALOG)

    def _extract(self, table: MetadataTable, index: int, catalog: AttributeCatalog) -> Any:
        parent = encode(table, index, CodedIndexKind.HAS_CUSTOM_ATTRIBUTE)
        entity = f"{catalog.category}[{index}]"
        data = catalog.record_type()

        for attribute in self.store.get_custom_attributes(parent):
            name: QualifiedName | None = None
            try:
                member_ref = self._constructor(attribute)
                name = self.attribute_name(member_ref)
                if name in catalog.ignored:
                    logger.debug("Skipping ignored attribute %s on %s", name, entity)
                    continue
                extractor = catalog.extractors.get(name)
                if extractor is None:
                    raise UnknownAttributeError(f"Unknown {catalog.category} attribute {name}")
                # Decoded for every handled attribute, markers included
                signature = self.constructor_signature(member_ref)
                value = self.decode_custom_attribute_value(signature, self.store.get_blob(attribute.value))
                context = ExtractionContext(self, attribute, member_ref, name, signature, value)
                data = extractor(context, data)
            except MetadataError as exc:
                exc.add_context(entity=entity, attribute=None if name is None else str(name))
                raise
        return data

    def _constructor(self, attribute: CustomAttributeRow) -> MemberRefRow:
        """Resolve the attribute's constructor, which must be a MemberRef."""
        constructor = attribute.constructor
        if constructor.is_null:
            raise FormatError("Custom attribute has a null constructor")
        if constructor.table != MetadataTable.MEMBER_REF:
            raise UnsupportedFeatureError(
                f"Attribute constructor {self.store.describe(constructor)} is not a MemberRef"
            )
        return self.store.get_member_ref(constructor.row)

    def attribute_name(self, member_ref: MemberRefRow) -> QualifiedName:
        """Qualified name of the type declaring the constructor."""
        parent = member_ref.parent
        if parent.is_null:
            raise FormatError("Attribute constructor has a null parent")
        if parent.table != MetadataTable.TYPE_REF:
            raise UnsupportedFeatureError(
                f"Attribute constructor parent {self.store.describe(parent)} is not a TypeRef"
            )
        return self.store.type_ref_name(parent.row)

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def constructor_signature(self, member_ref: MemberRefRow) -> MethodSignature:
        return self.resolver.decode_method_signature(self.store.get_blob(member_ref.signature))

    def single_string(self, signature: MethodSignature, value: CustomAttributeValue) -> LazyString:
        """The argument of an attribute whose constructor takes exactly one string."""
        if signature.param_types != (self.string_type,):
            shapes = ", ".join(t.display_name for t in signature.param_types)
            raise FormatError(f"Expected a single string argument, constructor takes ({shapes})")
        text = value[0].value
        if text is None:
            raise FormatError("Expected a string argument, got a null string")
        return text

    def decode_custom_attribute_value(self, signature: MethodSignature, blob: ByteCursor) -> CustomAttributeValue:
        """Decode prolog, fixed arguments and the (empty) named arguments of a value blob."""
        offset = blob.offset
        prolog = blob.read_u16()
        if prolog != CUSTOM_ATTRIBUTE_PROLOG:
            raise FormatError(f"Custom attribute prolog is 0x{prolog:04x}, expected 0x0001", offset=offset)

        fixed_arguments = []
        for param_type in signature.param_types:
            if isinstance(param_type, ArrayType):
                raise UnsupportedFeatureError("Array-typed attribute arguments are not supported", offset=blob.offset)
            fixed_arguments.append(ArgumentValue(param_type, None, self._read_element(blob, param_type)))

        named_offset = blob.offset
        named_count = blob.read_u16()
        if named_count != 0:
            raise FormatError(f"{named_count} named attribute arguments are not supported", offset=named_offset)
        if not blob.is_exhausted():
            raise FormatError(f"{blob.remaining} trailing bytes in custom attribute value", offset=blob.offset)
        return CustomAttributeValue(tuple(fixed_arguments))

    def _read_element(self, blob: ByteCursor, type_: Type) -> Any:
        """Read one fixed argument; enums are read as their base type."""
        try:
            element_type = self.resolver.element_type_of(type_)
        except UnsupportedFeatureError as exc:
            if exc.offset is None:
                exc.offset = blob.offset
            raise

        if element_type == ElementType.BOOLEAN:
            return blob.read_u8() != 0
        if element_type == ElementType.CHAR:
            return chr(blob.read_u16())
        if element_type == ElementType.I1:
            return blob.read_i8()
        if element_type == ElementType.U1:
            return blob.read_u8()
        if element_type == ElementType.I2:
            return blob.read_i16()
        if element_type == ElementType.U2:
            return blob.read_u16()
        if element_type == ElementType.I4:
            return blob.read_i32()
        if element_type == ElementType.U4:
            return blob.read_u32()
        if element_type == ElementType.I8:
            return blob.read_i64()
        if element_type == ElementType.U8:
            return blob.read_u64()
        if element_type == ElementType.R4:
            return blob.read_f32()
        if element_type == ElementType.R8:
            return blob.read_f64()
        if element_type == ElementType.STRING:
            return self._read_ser_string(blob)
        raise UnsupportedFeatureError(f"Unsupported attribute argument type {type_.display_name}", offset=blob.offset)

    def _read_ser_string(self, blob: ByteCursor) -> LazyString | None:
        """Read a SerString: compressed byte length then UTF-8, or 0xFF for null."""
        if blob.peek_u8() == NULL_STRING_MARKER:
            blob.skip(1)
            return None
        length = blob.read_compressed_unsigned_int()
        offset = blob.offset
        blob.skip(length)
        return LazyString(blob.data, offset, length)
