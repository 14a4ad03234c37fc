"""winmd_tables - A reader for ECMA-335 metadata images and their custom attributes."""

from winmd_tables.attributes import (
    ArgumentValue,
    CustomAttributeValue,
    FieldCustomAttributeData,
    MethodCustomAttributeData,
    ParamCustomAttributeData,
    TypeCustomAttributeData,
)
from winmd_tables.coded_index import NULL_CODED_INDEX, CodedIndex, CodedIndexKind
from winmd_tables.cursor import ByteCursor
from winmd_tables.decoder import CustomAttributeDecoder
from winmd_tables.errors import FormatError, MetadataError, UnknownAttributeError, UnsupportedFeatureError
from winmd_tables.metadata import MetadataStore
from winmd_tables.resolver import MethodSignature, TypeResolver
from winmd_tables.tables import MetadataTable
from winmd_tables.types import (
    Architecture,
    ArrayType,
    ElementType,
    EnumType,
    LazyString,
    PointerType,
    Primitive,
    QualifiedName,
    Type,
    TypeReference,
)

__all__ = [
    # Main API
    "MetadataStore",
    "TypeResolver",
    "CustomAttributeDecoder",
    # Low level
    "ByteCursor",
    "CodedIndex",
    "CodedIndexKind",
    "NULL_CODED_INDEX",
    "MetadataTable",
    "MethodSignature",
    # Type model
    "Type",
    "Primitive",
    "EnumType",
    "ArrayType",
    "PointerType",
    "TypeReference",
    "ElementType",
    "QualifiedName",
    "LazyString",
    "Architecture",
    # Attribute data
    "ArgumentValue",
    "CustomAttributeValue",
    "TypeCustomAttributeData",
    "MethodCustomAttributeData",
    "FieldCustomAttributeData",
    "ParamCustomAttributeData",
    # Errors
    "MetadataError",
    "FormatError",
    "UnknownAttributeError",
    "UnsupportedFeatureError",
]

__version__ = "0.1.0"
