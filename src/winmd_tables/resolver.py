"""Type resolution: element codes, signatures and TypeDef/TypeRef rows to Types."""

from __future__ import annotations

from dataclasses import dataclass

from winmd_tables.coded_index import CodedIndex, CodedIndexKind, decode
from winmd_tables.cursor import ByteCursor
from winmd_tables.errors import FormatError, UnsupportedFeatureError
from winmd_tables.metadata import MetadataStore
from winmd_tables.tables import MetadataTable
from winmd_tables.types import (
    PRIMITIVE_ELEMENT_TYPES,
    ArrayType,
    ElementType,
    EnumType,
    PointerType,
    Primitive,
    QualifiedName,
    Type,
    TypeReference,
)

ENUM_BASE = QualifiedName("System", "Enum")

# Signature leading bytes (ECMA-335 II.23.2)
CALLING_CONVENTION_MASK = 0x0F
CALLING_CONVENTION_VARARG = 0x05
CALLING_CONVENTION_GENERIC = 0x10
FIELD_SIGNATURE = 0x06


@dataclass(frozen=True)
class MethodSignature:
    """Decoded method (or constructor) signature."""

    calling_convention: int
    return_type: Type
    param_types: tuple[Type, ...]


class TypeResolver:
    """Maps signatures and type rows of one store to canonical Types.

    Resolved types are memoized by qualified name, so resolving the same
    type twice returns the same instance.
    """

    def __init__(self, store: MetadataStore) -> None:
        self.store = store
        self._primitives: dict[ElementType, Primitive] = {
            element_type: Primitive(element_type) for element_type in PRIMITIVE_ELEMENT_TYPES
        }
        self._types: dict[QualifiedName, Type] = {}

    def get_primitive(self, element_type: ElementType) -> Primitive:
        """Get the primitive type for an element code."""
        primitive = self._primitives.get(element_type)
        if primitive is None:
            raise UnsupportedFeatureError(f"Element type {element_type.name} is not a primitive")
        return primitive

    def element_type_of(self, type_: Type) -> ElementType:
        """Return the element code used to encode a raw value of the given type."""
        if isinstance(type_, Primitive):
            return type_.element_type
        if isinstance(type_, EnumType):
            return type_.base_type.element_type
        raise UnsupportedFeatureError(f"Type {type_.display_name} has no element encoding")

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def decode_type(self, cursor: ByteCursor) -> Type | None:
        """Decode one type from a signature blob.

        Returns ``None`` for the SENTINEL marker that starts the
        variable-argument part of a call site signature.
        """
        while True:
            offset = cursor.offset
            code = cursor.read_u8()
            try:
                element_type = ElementType(code)
            except ValueError:
                raise FormatError(f"Unknown element type 0x{code:02x}", offset=offset) from None

            if element_type in PRIMITIVE_ELEMENT_TYPES:
                return self._primitives[element_type]
            if element_type in (ElementType.CMOD_REQD, ElementType.CMOD_OPT):
                cursor.read_compressed_unsigned_int()
                continue
            if element_type in (ElementType.VALUETYPE, ElementType.CLASS):
                coded = decode(cursor.read_compressed_unsigned_int(), CodedIndexKind.TYPE_DEF_OR_REF)
                return self.resolve_type_def_or_ref(coded, offset)
            if element_type == ElementType.PTR:
                target = self._require_type(cursor, offset)
                return PointerType(target)
            if element_type == ElementType.SZARRAY:
                return ArrayType(self._require_type(cursor, offset))
            if element_type == ElementType.ARRAY:
                return self._decode_fixed_array(cursor, offset)
            if element_type == ElementType.SENTINEL:
                return None
            raise UnsupportedFeatureError(f"Unsupported element type {element_type.name}", offset=offset)

    def _require_type(self, cursor: ByteCursor, offset: int) -> Type:
        type_ = self.decode_type(cursor)
        if type_ is None:
            raise FormatError("Unexpected SENTINEL inside a type", offset=offset)
        return type_

    def _decode_fixed_array(self, cursor: ByteCursor, offset: int) -> ArrayType:
        """Decode a general ARRAY (ECMA-335 II.23.2.13); only single-rank arrays are supported."""
        element_type = self._require_type(cursor, offset)
        rank = cursor.read_compressed_unsigned_int()
        sizes = [cursor.read_compressed_unsigned_int() for _ in range(cursor.read_compressed_unsigned_int())]
        for _ in range(cursor.read_compressed_unsigned_int()):
            cursor.read_compressed_unsigned_int()  # lower bound
        if rank != 1:
            raise UnsupportedFeatureError(f"Arrays of rank {rank} are not supported", offset=offset)
        return ArrayType(element_type, sizes[0] if sizes else None)

    def decode_method_signature(self, cursor: ByteCursor) -> MethodSignature:
        """Decode a MethodDef/MemberRef method signature (ECMA-335 II.23.2.1-2)."""
        offset = cursor.offset
        calling_convention = cursor.read_u8()
        if calling_convention & CALLING_CONVENTION_MASK == CALLING_CONVENTION_VARARG:
            raise UnsupportedFeatureError("Variable argument signatures are not supported", offset=offset)
        if calling_convention & CALLING_CONVENTION_GENERIC:
            cursor.read_compressed_unsigned_int()  # generic parameter count

        param_count = cursor.read_compressed_unsigned_int()
        return_type = self._require_type(cursor, offset)
        params = []
        for _ in range(param_count):
            param_type = self.decode_type(cursor)
            if param_type is None:
                raise UnsupportedFeatureError("Variable argument signatures are not supported", offset=offset)
            params.append(param_type)

        if not cursor.is_exhausted():
            raise FormatError(f"{cursor.remaining} trailing bytes after method signature", offset=cursor.offset)
        return MethodSignature(calling_convention, return_type, tuple(params))

    def decode_field_signature(self, cursor: ByteCursor) -> Type:
        """Decode a field signature (ECMA-335 II.23.2.4)."""
        offset = cursor.offset
        prolog = cursor.read_u8()
        if prolog != FIELD_SIGNATURE:
            raise FormatError(f"Field signature starts with 0x{prolog:02x}", offset=offset)
        return self._require_type(cursor, offset)

    # ------------------------------------------------------------------
    # Type rows
    # ------------------------------------------------------------------

    def resolve_type_def_or_ref(self, index: CodedIndex, offset: int | None = None) -> Type:
        """Resolve a TypeDefOrRef coded index."""
        if index.is_null:
            raise FormatError("Null type reference in signature", offset=offset)
        if index.table == MetadataTable.TYPE_DEF:
            return self.resolve_type_def(index.row)
        if index.table == MetadataTable.TYPE_REF:
            return self.resolve_type_ref(index.row)
        raise UnsupportedFeatureError("TypeSpec references are not supported", offset=offset)

    def resolve_type_def(self, index: int) -> Type:
        """Resolve a 0-based TypeDef row to an EnumType or an opaque reference."""
        name = self.store.type_def_name(index)
        existing = self._types.get(name)
        if existing is not None:
            return existing

        row = self.store.get_type_def(index)
        if self._qualified_name(row.extends) == ENUM_BASE:
            resolved: Type = EnumType(name, self._enum_base_type(index, name))
        else:
            resolved = TypeReference(name)
        # first stored instance wins
        return self._types.setdefault(name, resolved)

    def resolve_type_ref(self, index: int) -> Type:
        """Resolve a 0-based TypeRef row, preferring a same-named TypeDef in this store."""
        name = self.store.type_ref_name(index)
        existing = self._types.get(name)
        if existing is not None:
            return existing

        type_def = self.store.find_type_def(name)
        if type_def is not None:
            return self.resolve_type_def(type_def)
        return self._types.setdefault(name, TypeReference(name))

    def _qualified_name(self, index: CodedIndex) -> QualifiedName | None:
        if index.is_null:
            return None
        if index.table == MetadataTable.TYPE_DEF:
            return self.store.type_def_name(index.row)
        if index.table == MetadataTable.TYPE_REF:
            return self.store.type_ref_name(index.row)
        return None

    def _enum_base_type(self, index: int, name: QualifiedName) -> Primitive:
        """The underlying type of an enum is the type of its first (``value__``) field."""
        fields = self.store.field_range(index)
        if not fields:
            raise FormatError(f"Enum {name} has no value__ field")
        field_row = self.store.get_field(fields[0])
        base = self.decode_field_signature(self.store.get_blob(field_row.signature))
        if not isinstance(base, Primitive) or not base.element_type.is_integer:
            raise FormatError(f"Enum {name} has non-integer base type {base.display_name}")
        return base
