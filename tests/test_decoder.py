"""Tests for custom attribute decoding and extraction."""

import logging
import struct
import uuid

import pytest

from tests._fixtures.image_builder import (
    METADATA,
    ImageBuilder,
    attribute_value,
    compress_unsigned,
    constructor_signature,
    ser_string,
)
from winmd_tables.attributes import (
    ArgumentValue,
    CustomAttributeValue,
    FieldCustomAttributeData,
    MethodCustomAttributeData,
    ParamCustomAttributeData,
    TypeCustomAttributeData,
)
from winmd_tables.catalog import (
    ASSOCIATED_ENUM_ATTRIBUTE,
    CONSTANT_ATTRIBUTE,
    DOCUMENTATION_ATTRIBUTE,
    FLAGS_ATTRIBUTE,
    FLEXIBLE_ARRAY_ATTRIBUTE,
    GUID_ATTRIBUTE,
    NATIVE_ENCODING_ATTRIBUTE,
    NATIVE_TYPEDEF_ATTRIBUTE,
    STRUCT_SIZE_FIELD_ATTRIBUTE,
    SUPPORTED_ARCHITECTURE_ATTRIBUTE,
    create_guid_constant,
)
from winmd_tables.coded_index import CodedIndexKind, encode
from winmd_tables.cursor import ByteCursor
from winmd_tables.decoder import CustomAttributeDecoder
from winmd_tables.errors import FormatError, UnknownAttributeError, UnsupportedFeatureError
from winmd_tables.metadata import MetadataStore
from winmd_tables.resolver import MethodSignature
from winmd_tables.tables import MetadataTable
from winmd_tables.types import Architecture, ElementType, LazyString, Primitive, QualifiedName

FOUNDATION = "Windows.Win32.Foundation"
DOCS_URL = "https://learn.microsoft.com/windows/win32/api/winuser/nf-winuser-createwindowexw"

# Element codes as they appear in constructor signatures
STRING = b"\x0e"
I4 = b"\x08"
U4 = b"\x09"
U2 = b"\x07"
U1 = b"\x05"

GUID_SIGNATURE = constructor_signature(U4, U2, U2, *[U1] * 8)
GUID_VALUE = attribute_value(struct.pack("<IHH8B", 0xAABBCCDD, 0x1122, 0x3344, 0, 1, 2, 3, 4, 5, 6, 7))
EXPECTED_GUID = uuid.UUID("aabbccdd-1122-3344-0001-020304050607")


def decoder_for(builder: ImageBuilder) -> CustomAttributeDecoder:
    return CustomAttributeDecoder(MetadataStore(builder.build()))


def string_attribute(text: str | None) -> bytes:
    return attribute_value(ser_string(text))


def guid_arguments(*values: object) -> CustomAttributeValue:
    return CustomAttributeValue(tuple(ArgumentValue(Primitive(ElementType.U4), None, value) for value in values))


class TestGuidConstant:
    """Tests for packing GuidAttribute arguments."""

    def test_create_guid_constant(self):
        """Test the argument order and widths of the packed GUID."""
        value = guid_arguments(0xAABBCCDD, 0x1122, 0x3344, 0, 1, 2, 3, 4, 5, 6, 7)

        assert create_guid_constant(value) == EXPECTED_GUID

    def test_signed_arguments_are_masked(self):
        """Test that sign-extended raw values are masked to their width."""
        value = guid_arguments(-1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1)

        assert create_guid_constant(value) == uuid.UUID("ffffffff-ffff-ffff-ffff-ffffffffffff")

    def test_wrong_argument_count(self):
        with pytest.raises(FormatError):
            create_guid_constant(guid_arguments(1, 2, 3))

    def test_non_integer_argument(self):
        with pytest.raises(FormatError):
            create_guid_constant(guid_arguments(1, 2, 3, 4, 5, 6, 7, 8, 9, 10, "x"))


class TestTypeAttributes:
    """Tests for TypeDef attribute extraction."""

    def test_no_attributes(self, builder):
        """Test that a type without attributes gets the defaults."""
        index = builder.type_def(FOUNDATION, "HWND")

        data = decoder_for(builder).get_type_def_attributes(index)

        assert data == TypeCustomAttributeData()
        assert data.supported_architecture == Architecture.ALL

    def test_guid_flags_and_documentation(self, builder):
        """Test several attributes accumulating into one record."""
        index = builder.type_def(FOUNDATION, "IUnknown")
        builder.attach(MetadataTable.TYPE_DEF, index, GUID_ATTRIBUTE, GUID_SIGNATURE, GUID_VALUE)
        builder.attach(MetadataTable.TYPE_DEF, index, FLAGS_ATTRIBUTE, constructor_signature(), attribute_value())
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            DOCUMENTATION_ATTRIBUTE,
            constructor_signature(STRING),
            string_attribute(DOCS_URL),
        )

        data = decoder_for(builder).get_type_def_attributes(index)

        assert data.guid_constant == EXPECTED_GUID
        assert data.is_enum_flags
        assert isinstance(data.documentation_url, LazyString)
        assert data.documentation_url == DOCS_URL
        assert data.supported_architecture == Architecture.ALL
        assert not data.is_typedef

    def test_typedef_and_struct_size(self, builder):
        index = builder.type_def(FOUNDATION, "BITMAPINFO")
        builder.attach(MetadataTable.TYPE_DEF, index, NATIVE_TYPEDEF_ATTRIBUTE, constructor_signature(), attribute_value())
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            STRUCT_SIZE_FIELD_ATTRIBUTE,
            constructor_signature(STRING),
            string_attribute("cbSize"),
        )

        data = decoder_for(builder).get_type_def_attributes(index)

        assert data.is_typedef
        assert data.struct_size_field == "cbSize"

    def test_supported_architecture_enum_argument(self, builder):
        """Test an enum-typed argument read through its integer base type."""
        builder.enum_type(METADATA, "Architecture", base_element_type=0x08)
        index = builder.type_def(FOUNDATION, "CONTEXT")
        architecture = builder.type_ref(METADATA, "Architecture")
        token = compress_unsigned(encode(MetadataTable.TYPE_REF, architecture, CodedIndexKind.TYPE_DEF_OR_REF))
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            SUPPORTED_ARCHITECTURE_ATTRIBUTE,
            constructor_signature(b"\x11" + token),
            attribute_value(struct.pack("<i", 2)),
        )

        data = decoder_for(builder).get_type_def_attributes(index)

        assert data.supported_architecture == Architecture.X64

    def test_unresolvable_enum_argument(self, builder):
        """Test that an argument of an enum defined elsewhere cannot be read."""
        index = builder.type_def(FOUNDATION, "CONTEXT")
        architecture = builder.type_ref(METADATA, "Architecture")
        token = compress_unsigned(encode(MetadataTable.TYPE_REF, architecture, CodedIndexKind.TYPE_DEF_OR_REF))
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            SUPPORTED_ARCHITECTURE_ATTRIBUTE,
            constructor_signature(b"\x11" + token),
            attribute_value(struct.pack("<i", 2)),
        )

        with pytest.raises(UnsupportedFeatureError):
            decoder_for(builder).get_type_def_attributes(index)

    def test_ignored_attribute(self, builder, caplog):
        """Test that ignored attributes leave the record untouched."""
        index = builder.type_def(FOUNDATION, "OLD_STRUCT")
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            QualifiedName("System", "ObsoleteAttribute"),
            constructor_signature(STRING),
            string_attribute("Use NEW_STRUCT"),
        )

        with caplog.at_level(logging.DEBUG, logger="winmd_tables"):
            data = decoder_for(builder).get_type_def_attributes(index)

        assert data == TypeCustomAttributeData()
        assert "Skipping ignored attribute System.ObsoleteAttribute on TypeDef[0]" in caplog.text

    def test_unknown_attribute(self, builder):
        """Test that an attribute outside the catalog fails with its name."""
        index = builder.type_def(FOUNDATION, "HWND")
        name = QualifiedName(METADATA, "MadeUpAttribute")
        builder.attach(MetadataTable.TYPE_DEF, index, name, constructor_signature(), attribute_value())

        with pytest.raises(UnknownAttributeError) as info:
            decoder_for(builder).get_type_def_attributes(index)

        assert "Windows.Win32.Foundation.Metadata.MadeUpAttribute" in str(info.value)
        assert info.value.attribute == "Windows.Win32.Foundation.Metadata.MadeUpAttribute"
        assert info.value.entity == "TypeDef[0]"

    def test_attribute_on_other_row_not_seen(self, builder):
        first = builder.type_def(FOUNDATION, "HWND")
        second = builder.type_def(FOUNDATION, "HDC")
        builder.attach(MetadataTable.TYPE_DEF, second, FLAGS_ATTRIBUTE, constructor_signature(), attribute_value())
        decoder = decoder_for(builder)

        assert not decoder.get_type_def_attributes(first).is_enum_flags
        assert decoder.get_type_def_attributes(second).is_enum_flags


class TestMemberAttributes:
    """Tests for MethodDef, Field and Param attribute extraction."""

    def test_method_attributes(self, builder):
        builder.type_def(FOUNDATION, "Apis")
        method = builder.method_def("CreateWindowExW", b"\x00\x00\x01")
        builder.attach(
            MetadataTable.METHOD_DEF,
            method,
            DOCUMENTATION_ATTRIBUTE,
            constructor_signature(STRING),
            string_attribute(DOCS_URL),
        )
        builder.attach(
            MetadataTable.METHOD_DEF,
            method,
            CONSTANT_ATTRIBUTE,
            constructor_signature(STRING),
            string_attribute("0x80070005"),
        )
        builder.attach(
            MetadataTable.METHOD_DEF,
            method,
            QualifiedName(METADATA, "SupportedOSPlatformAttribute"),
            constructor_signature(STRING),
            string_attribute("windows5.0"),
        )

        data = decoder_for(builder).get_method_def_attributes(method)

        assert data.documentation_url == DOCS_URL
        assert data.constant_value == "0x80070005"
        assert data.supported_architecture == Architecture.ALL
        assert decoder_for(builder).get_method_def_attributes(method) != MethodCustomAttributeData()

    def test_field_attributes(self, builder):
        builder.type_def(FOUNDATION, "LOGFONTA", fields=[("lfHeight", b"\x06\x08"), ("lfFaceName", b"\x06\x1d\x05")])
        builder.attach(
            MetadataTable.FIELD,
            1,
            NATIVE_ENCODING_ATTRIBUTE,
            constructor_signature(STRING),
            string_attribute("ansi"),
        )
        builder.attach(MetadataTable.FIELD, 1, FLEXIBLE_ARRAY_ATTRIBUTE, constructor_signature(), attribute_value())
        decoder = decoder_for(builder)

        assert decoder.get_field_attributes(0) == FieldCustomAttributeData()
        data = decoder.get_field_attributes(1)
        assert data.is_ansi_encoding
        assert data.is_flexible_array
        assert data.guid_constant is None

    def test_field_guid(self, builder):
        """Test a GUID constant declared on a field."""
        builder.type_def(FOUNDATION, "Apis", fields=[("IID_IUnknown", b"\x06\x11\x00")])
        builder.attach(MetadataTable.FIELD, 0, GUID_ATTRIBUTE, GUID_SIGNATURE, GUID_VALUE)

        assert decoder_for(builder).get_field_attributes(0).guid_constant == EXPECTED_GUID

    def test_param_attributes(self, builder):
        builder.type_def(FOUNDATION, "Apis")
        builder.method_def("FormatMessageW", b"\x00\x00\x01", params=["dwFlags", "lpSource"])
        builder.attach(
            MetadataTable.PARAM,
            0,
            ASSOCIATED_ENUM_ATTRIBUTE,
            constructor_signature(STRING),
            string_attribute("FORMAT_MESSAGE_OPTIONS"),
        )
        builder.attach(
            MetadataTable.PARAM,
            1,
            DOCUMENTATION_ATTRIBUTE,
            constructor_signature(STRING),
            string_attribute(DOCS_URL),
        )
        decoder = decoder_for(builder)

        assert decoder.get_param_attributes(0) == ParamCustomAttributeData(associated_enum_type="FORMAT_MESSAGE_OPTIONS")
        assert decoder.get_param_attributes(1) == ParamCustomAttributeData()

    def test_flag_not_known_for_params(self, builder):
        """Test that catalogs are per category."""
        builder.type_def(FOUNDATION, "Apis")
        builder.method_def("Beep", b"\x00\x00\x01", params=["dwFreq"])
        builder.attach(MetadataTable.PARAM, 0, FLAGS_ATTRIBUTE, constructor_signature(), attribute_value())

        with pytest.raises(UnknownAttributeError) as info:
            decoder_for(builder).get_param_attributes(0)
        assert "Unknown Param attribute System.FlagsAttribute" in str(info.value)


class TestValueErrors:
    """Tests for malformed or unsupported attribute values."""

    def attach_documentation(self, builder: ImageBuilder, signature: bytes, value: bytes) -> int:
        index = builder.type_def(FOUNDATION, "HWND")
        builder.attach(MetadataTable.TYPE_DEF, index, DOCUMENTATION_ATTRIBUTE, signature, value)
        return index

    def test_bad_prolog(self, builder):
        index = self.attach_documentation(builder, constructor_signature(STRING), attribute_value(ser_string("x"), prolog=2))

        with pytest.raises(FormatError) as info:
            decoder_for(builder).get_type_def_attributes(index)
        assert "prolog" in str(info.value)

    def test_named_arguments(self, builder):
        index = self.attach_documentation(builder, constructor_signature(STRING), attribute_value(ser_string("x"), named_count=1))

        with pytest.raises(FormatError) as info:
            decoder_for(builder).get_type_def_attributes(index)
        assert "named" in str(info.value)

    def test_trailing_bytes(self, builder):
        index = self.attach_documentation(builder, constructor_signature(STRING), string_attribute("x") + b"\x00")

        with pytest.raises(FormatError):
            decoder_for(builder).get_type_def_attributes(index)

    def test_null_string(self, builder):
        index = self.attach_documentation(builder, constructor_signature(STRING), string_attribute(None))

        with pytest.raises(FormatError):
            decoder_for(builder).get_type_def_attributes(index)

    def test_argument_type_mismatch(self, builder):
        """Test that a single-string attribute with an integer constructor fails."""
        index = self.attach_documentation(builder, constructor_signature(I4), attribute_value(struct.pack("<i", 5)))

        with pytest.raises(FormatError) as info:
            decoder_for(builder).get_type_def_attributes(index)
        assert info.value.entity == "TypeDef[0]"
        assert info.value.attribute == str(DOCUMENTATION_ATTRIBUTE)
        assert "entity=TypeDef[0]" in str(info.value)

    def test_integer_for_string_field(self, builder):
        index = builder.type_def(FOUNDATION, "BITMAPINFO")
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            STRUCT_SIZE_FIELD_ATTRIBUTE,
            constructor_signature(I4),
            attribute_value(struct.pack("<i", 4)),
        )

        with pytest.raises(FormatError):
            decoder_for(builder).get_type_def_attributes(index)

    def test_array_argument(self, builder):
        index = builder.type_def(FOUNDATION, "IUnknown")
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            GUID_ATTRIBUTE,
            constructor_signature(b"\x1d\x05"),
            attribute_value(b"\x00\x00\x00\x00"),
        )

        with pytest.raises(UnsupportedFeatureError):
            decoder_for(builder).get_type_def_attributes(index)

    def test_truncated_value(self, builder):
        index = builder.type_def(FOUNDATION, "IUnknown")
        builder.attach(MetadataTable.TYPE_DEF, index, GUID_ATTRIBUTE, GUID_SIGNATURE, attribute_value(b"\x01\x02"))

        with pytest.raises(FormatError):
            decoder_for(builder).get_type_def_attributes(index)

    def test_malformed_marker_value(self, builder):
        """Test that a marker attribute's value blob is checked even though it carries no data."""
        index = builder.type_def(FOUNDATION, "FILE_FLAGS")
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            FLAGS_ATTRIBUTE,
            constructor_signature(),
            attribute_value(prolog=7, named_count=3) + b"junk",
        )

        with pytest.raises(FormatError) as info:
            decoder_for(builder).get_type_def_attributes(index)
        assert "prolog" in str(info.value)
        assert info.value.attribute == str(FLAGS_ATTRIBUTE)
        assert info.value.entity == "TypeDef[0]"

    def test_marker_trailing_bytes(self, builder):
        """Test that trailing bytes after a marker attribute's arguments are rejected."""
        builder.type_def(FOUNDATION, "VARIABLE", fields=[("Data", b"\x06\x1d\x05")])
        builder.attach(
            MetadataTable.FIELD,
            0,
            FLEXIBLE_ARRAY_ATTRIBUTE,
            constructor_signature(),
            attribute_value() + b"\x00",
        )

        with pytest.raises(FormatError) as info:
            decoder_for(builder).get_field_attributes(0)
        assert info.value.entity == "Field[0]"

    def test_invalid_utf8_string_argument(self, builder):
        """Test that a string argument that is not UTF-8 is a format error with context."""
        index = builder.type_def(FOUNDATION, "BITMAPINFO")
        builder.attach(
            MetadataTable.TYPE_DEF,
            index,
            STRUCT_SIZE_FIELD_ATTRIBUTE,
            constructor_signature(STRING),
            attribute_value(b"\x02\xff\xfe"),
        )

        with pytest.raises(FormatError) as info:
            decoder_for(builder).get_type_def_attributes(index)
        assert info.value.entity == "TypeDef[0]"
        assert info.value.attribute == str(STRUCT_SIZE_FIELD_ATTRIBUTE)
        assert info.value.offset is not None

    def test_method_def_constructor(self, builder):
        """Test that only MemberRef constructors are supported."""
        index = builder.type_def(FOUNDATION, "HWND")
        method = builder.method_def(".ctor", constructor_signature())
        builder.custom_attribute(
            encode(MetadataTable.TYPE_DEF, index, CodedIndexKind.HAS_CUSTOM_ATTRIBUTE),
            encode(MetadataTable.METHOD_DEF, method, CodedIndexKind.CUSTOM_ATTRIBUTE_TYPE),
            attribute_value(),
        )

        with pytest.raises(UnsupportedFeatureError) as info:
            decoder_for(builder).get_type_def_attributes(index)
        assert info.value.entity == "TypeDef[0]"
        assert info.value.attribute is None


class TestDecodeValue:
    """Tests for decoding fixed arguments of every element kind."""

    def test_scalar_arguments(self, builder):
        decoder = decoder_for(builder)
        prim = decoder.resolver.get_primitive
        signature = MethodSignature(
            0x20,
            prim(ElementType.VOID),
            (
                prim(ElementType.BOOLEAN),
                prim(ElementType.CHAR),
                prim(ElementType.I2),
                prim(ElementType.U8),
                prim(ElementType.R8),
                prim(ElementType.STRING),
            ),
        )
        args = struct.pack("<BHhQd", 1, ord("Z"), -7, 2**63, 0.5) + ser_string("text")

        value = decoder.decode_custom_attribute_value(signature, ByteCursor(attribute_value(args)))

        assert [argument.value for argument in value.fixed_arguments] == [True, "Z", -7, 2**63, 0.5, "text"]
        assert value[5].type == Primitive(ElementType.STRING)

    def test_null_string_argument(self, builder):
        decoder = decoder_for(builder)
        signature = MethodSignature(0x20, decoder.resolver.get_primitive(ElementType.VOID), (decoder.string_type,))

        value = decoder.decode_custom_attribute_value(signature, ByteCursor(attribute_value(ser_string(None))))

        assert value[0].value is None
        assert value[0].name is None
