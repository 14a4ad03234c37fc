"""Metadata table identifiers and typed row views."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from winmd_tables.coded_index import CodedIndex


class MetadataTable(Enum):
    """Metadata tables in table-id order (ECMA-335 II.22)."""

    MODULE = 0x00
    TYPE_REF = 0x01
    TYPE_DEF = 0x02
    FIELD_PTR = 0x03
    FIELD = 0x04
    METHOD_PTR = 0x05
    METHOD_DEF = 0x06
    PARAM_PTR = 0x07
    PARAM = 0x08
    INTERFACE_IMPL = 0x09
    MEMBER_REF = 0x0A
    CONSTANT = 0x0B
    CUSTOM_ATTRIBUTE = 0x0C
    FIELD_MARSHAL = 0x0D
    DECL_SECURITY = 0x0E
    CLASS_LAYOUT = 0x0F
    FIELD_LAYOUT = 0x10
    STAND_ALONE_SIG = 0x11
    EVENT_MAP = 0x12
    EVENT_PTR = 0x13
    EVENT = 0x14
    PROPERTY_MAP = 0x15
    PROPERTY_PTR = 0x16
    PROPERTY = 0x17
    METHOD_SEMANTICS = 0x18
    METHOD_IMPL = 0x19
    MODULE_REF = 0x1A
    TYPE_SPEC = 0x1B
    IMPL_MAP = 0x1C
    FIELD_RVA = 0x1D
    ENC_LOG = 0x1E
    ENC_MAP = 0x1F
    ASSEMBLY = 0x20
    ASSEMBLY_PROCESSOR = 0x21
    ASSEMBLY_OS = 0x22
    ASSEMBLY_REF = 0x23
    ASSEMBLY_REF_PROCESSOR = 0x24
    ASSEMBLY_REF_OS = 0x25
    FILE = 0x26
    EXPORTED_TYPE = 0x27
    MANIFEST_RESOURCE = 0x28
    NESTED_CLASS = 0x29
    GENERIC_PARAM = 0x2A
    METHOD_SPEC = 0x2B
    GENERIC_PARAM_CONSTRAINT = 0x2C

    @property
    def display_name(self) -> str:
        """CamelCase name as used in the ECMA-335 tables chapter."""
        return "".join(part.capitalize() for part in self.name.split("_")).replace("Os", "OS")


# Row views hold raw column values: heap columns are heap offsets/indexes,
# coded columns are decoded CodedIndex values, list columns are 0-based
# start rows into the target table.


@dataclass(frozen=True)
class TypeDefRow:
    flags: int
    type_name: int
    type_namespace: int
    extends: CodedIndex
    field_list: int
    method_list: int


@dataclass(frozen=True)
class TypeRefRow:
    resolution_scope: CodedIndex
    type_name: int
    type_namespace: int


@dataclass(frozen=True)
class FieldRow:
    flags: int
    name: int
    signature: int


@dataclass(frozen=True)
class MethodDefRow:
    rva: int
    impl_flags: int
    flags: int
    name: int
    signature: int
    param_list: int


@dataclass(frozen=True)
class ParamRow:
    flags: int
    sequence: int
    name: int


@dataclass(frozen=True)
class MemberRefRow:
    parent: CodedIndex
    name: int
    signature: int


@dataclass(frozen=True)
class CustomAttributeRow:
    """One attached attribute: its owner, its constructor and its value blob."""

    parent: CodedIndex
    constructor: CodedIndex
    value: int
