"""Static catalogs of known and ignored custom attributes per entity category."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping

from winmd_tables.attributes import (
    CustomAttributeValue,
    FieldCustomAttributeData,
    MethodCustomAttributeData,
    ParamCustomAttributeData,
    TypeCustomAttributeData,
)
from winmd_tables.errors import FormatError
from winmd_tables.types import Architecture, LazyString, QualifiedName

if TYPE_CHECKING:
    from winmd_tables.decoder import ExtractionContext

# An extractor returns the record updated with the facts of one attribute
Extractor = Callable[["ExtractionContext", Any], Any]

SYSTEM = "System"
INTEROP = "System.Runtime.InteropServices"
METADATA = "Windows.Win32.Foundation.Metadata"

FLAGS_ATTRIBUTE = QualifiedName(SYSTEM, "FlagsAttribute")
ASSOCIATED_ENUM_ATTRIBUTE = QualifiedName(METADATA, "AssociatedEnumAttribute")
CONSTANT_ATTRIBUTE = QualifiedName(METADATA, "ConstantAttribute")
DOCUMENTATION_ATTRIBUTE = QualifiedName(METADATA, "DocumentationAttribute")
FLEXIBLE_ARRAY_ATTRIBUTE = QualifiedName(METADATA, "FlexibleArrayAttribute")
GUID_ATTRIBUTE = QualifiedName(METADATA, "GuidAttribute")
NATIVE_ENCODING_ATTRIBUTE = QualifiedName(METADATA, "NativeEncodingAttribute")
NATIVE_TYPEDEF_ATTRIBUTE = QualifiedName(METADATA, "NativeTypedefAttribute")
STRUCT_SIZE_FIELD_ATTRIBUTE = QualifiedName(METADATA, "StructSizeFieldAttribute")
SUPPORTED_ARCHITECTURE_ATTRIBUTE = QualifiedName(METADATA, "SupportedArchitectureAttribute")

# Widths in bits of the 11 GuidAttribute constructor arguments
GUID_ARGUMENT_BITS = (32, 16, 16, 8, 8, 8, 8, 8, 8, 8, 8)


@dataclass(frozen=True)
class AttributeCatalog:
    """The closed set of attributes handled for one entity category."""

    category: str
    record_type: type
    extractors: Mapping[QualifiedName, Extractor]
    ignored: frozenset[QualifiedName]


def create_guid_constant(value: CustomAttributeValue) -> uuid.UUID:
    """Build a GUID from GuidAttribute's 11 fixed arguments.

    The first three arguments (32, 16, 16 bits) form the most significant
    part in order; the eight byte arguments follow in their original order.
    Each argument is masked to its width, so signed raw values are accepted.
    """
    if len(value) != len(GUID_ARGUMENT_BITS):
        raise FormatError(f"GUID attribute has {len(value)} arguments, expected {len(GUID_ARGUMENT_BITS)}")
    result = 0
    for argument, bits in zip(value.fixed_arguments, GUID_ARGUMENT_BITS):
        raw = argument.value
        if not isinstance(raw, int) or isinstance(raw, bool):
            raise FormatError(f"GUID attribute argument has type {type(raw).__name__}, expected integer")
        result = (result << bits) | (raw & ((1 << bits) - 1))
    return uuid.UUID(int=result)


def first_argument(context: ExtractionContext, expected: type) -> Any:
    """Return the first fixed argument, checking its runtime shape.

    Strings are returned as text.
    """
    value = context.value
    if len(value) == 0:
        raise FormatError(f"{context.name} has no arguments")
    raw = value[0].value
    if expected is str:
        if not isinstance(raw, LazyString):
            raise FormatError(f"{context.name} argument has type {type(raw).__name__}, expected string")
        return raw.decode()
    if expected is int:
        if not isinstance(raw, int) or isinstance(raw, bool):
            raise FormatError(f"{context.name} argument has type {type(raw).__name__}, expected integer")
        return raw
    raise TypeError(f"Unsupported expected argument type: {expected!r}")


def _supported_architecture(context: ExtractionContext, data: Any) -> Any:
    return replace(data, supported_architecture=Architecture(first_argument(context, int)))


def _documentation(context: ExtractionContext, data: Any) -> Any:
    return replace(data, documentation_url=context.lazy_string())


def _guid(context: ExtractionContext, data: Any) -> Any:
    return replace(data, guid_constant=create_guid_constant(context.value))


def _constant(context: ExtractionContext, data: Any) -> Any:
    return replace(data, constant_value=first_argument(context, str))


def _flag(field_name: str) -> Extractor:
    """Extractor for marker attributes that just set a boolean."""

    def extract(context: ExtractionContext, data: Any) -> Any:
        return replace(data, **{field_name: True})

    return extract


def _struct_size_field(context: ExtractionContext, data: Any) -> Any:
    return replace(data, struct_size_field=first_argument(context, str))


def _associated_enum(context: ExtractionContext, data: Any) -> Any:
    return replace(data, associated_enum_type=first_argument(context, str))


def _names(*names: tuple[str, str] | QualifiedName) -> frozenset[QualifiedName]:
    return frozenset(name if isinstance(name, QualifiedName) else QualifiedName(*name) for name in names)


TYPE_CATALOG = AttributeCatalog(
    category="TypeDef",
    record_type=TypeCustomAttributeData,
    extractors=MappingProxyType(
        {
            SUPPORTED_ARCHITECTURE_ATTRIBUTE: _supported_architecture,
            DOCUMENTATION_ATTRIBUTE: _documentation,
            FLAGS_ATTRIBUTE: _flag("is_enum_flags"),
            GUID_ATTRIBUTE: _guid,
            NATIVE_TYPEDEF_ATTRIBUTE: _flag("is_typedef"),
            STRUCT_SIZE_FIELD_ATTRIBUTE: _struct_size_field,
        }
    ),
    ignored=_names(
        (SYSTEM, "AttributeUsageAttribute"),
        (SYSTEM, "ObsoleteAttribute"),
        (INTEROP, "ComVisibleAttribute"),
        (INTEROP, "UnmanagedFunctionPointerAttribute"),
        (METADATA, "AgileAttribute"),
        (METADATA, "AlsoUsableForAttribute"),
        (METADATA, "AnsiAttribute"),
        (METADATA, "AssociatedConstantAttribute"),
        (METADATA, "InvalidHandleValueAttribute"),
        (METADATA, "MetadataTypedefAttribute"),
        (METADATA, "RAIIFreeAttribute"),
        (METADATA, "ScopedEnumAttribute"),
        (METADATA, "SupportedOSPlatformAttribute"),
        (METADATA, "UnicodeAttribute"),
    ),
)

METHOD_CATALOG = AttributeCatalog(
    category="MethodDef",
    record_type=MethodCustomAttributeData,
    extractors=MappingProxyType(
        {
            SUPPORTED_ARCHITECTURE_ATTRIBUTE: _supported_architecture,
            DOCUMENTATION_ATTRIBUTE: _documentation,
            CONSTANT_ATTRIBUTE: _constant,
        }
    ),
    ignored=_names(
        (SYSTEM, "ObsoleteAttribute"),
        (METADATA, "AnsiAttribute"),
        (METADATA, "CanReturnErrorsAsSuccessAttribute"),
        (METADATA, "CanReturnMultipleSuccessValuesAttribute"),
        (METADATA, "SupportedOSPlatformAttribute"),
        (METADATA, "UnicodeAttribute"),
        ("System.Diagnostics.CodeAnalysis", "DoesNotReturnAttribute"),
    ),
)

FIELD_CATALOG = AttributeCatalog(
    category="Field",
    record_type=FieldCustomAttributeData,
    extractors=MappingProxyType(
        {
            DOCUMENTATION_ATTRIBUTE: _documentation,
            GUID_ATTRIBUTE: _guid,
            NATIVE_ENCODING_ATTRIBUTE: _flag("is_ansi_encoding"),
            FLEXIBLE_ARRAY_ATTRIBUTE: _flag("is_flexible_array"),
            CONSTANT_ATTRIBUTE: _constant,
        }
    ),
    ignored=_names((METADATA, "ConstAttribute")),
)

PARAM_CATALOG = AttributeCatalog(
    category="Param",
    record_type=ParamCustomAttributeData,
    extractors=MappingProxyType({ASSOCIATED_ENUM_ATTRIBUTE: _associated_enum}),
    ignored=_names(
        (METADATA, "ComOutPtrAttribute"),
        (METADATA, "ConstAttribute"),
        DOCUMENTATION_ATTRIBUTE,
        (METADATA, "DoNotReleaseAttribute"),
        (METADATA, "FreeWithAttribute"),
        (METADATA, "IgnoreIfReturnAttribute"),
        (METADATA, "MemorySizeAttribute"),
        (METADATA, "NativeArrayInfoAttribute"),
        (METADATA, "NotNullTerminatedAttribute"),
        (METADATA, "NullNullTerminatedAttribute"),
        (METADATA, "RAIIFreeAttribute"),
        (METADATA, "ReservedAttribute"),
        (METADATA, "RetainedAttribute"),
        (METADATA, "RetValAttribute"),
    ),
)
