"""Coded indexes: a table selector and a row packed into one integer (ECMA-335 II.24.2.6)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from winmd_tables.errors import FormatError
from winmd_tables.tables import MetadataTable

T = MetadataTable


class CodedIndexKind(Enum):
    """Coded index kinds with their fixed table orderings.

    ``None`` entries are tag values reserved by the format and never used.
    """

    TYPE_DEF_OR_REF = (T.TYPE_DEF, T.TYPE_REF, T.TYPE_SPEC)
    HAS_CONSTANT = (T.FIELD, T.PARAM, T.PROPERTY)
    HAS_CUSTOM_ATTRIBUTE = (
        T.METHOD_DEF,
        T.FIELD,
        T.TYPE_REF,
        T.TYPE_DEF,
        T.PARAM,
        T.INTERFACE_IMPL,
        T.MEMBER_REF,
        T.MODULE,
        T.DECL_SECURITY,
        T.PROPERTY,
        T.EVENT,
        T.STAND_ALONE_SIG,
        T.MODULE_REF,
        T.TYPE_SPEC,
        T.ASSEMBLY,
        T.ASSEMBLY_REF,
        T.FILE,
        T.EXPORTED_TYPE,
        T.MANIFEST_RESOURCE,
        T.GENERIC_PARAM,
        T.GENERIC_PARAM_CONSTRAINT,
        T.METHOD_SPEC,
    )
    HAS_FIELD_MARSHAL = (T.FIELD, T.PARAM)
    HAS_DECL_SECURITY = (T.TYPE_DEF, T.METHOD_DEF, T.ASSEMBLY)
    MEMBER_REF_PARENT = (T.TYPE_DEF, T.TYPE_REF, T.MODULE_REF, T.METHOD_DEF, T.TYPE_SPEC)
    HAS_SEMANTICS = (T.EVENT, T.PROPERTY)
    METHOD_DEF_OR_REF = (T.METHOD_DEF, T.MEMBER_REF)
    MEMBER_FORWARDED = (T.FIELD, T.METHOD_DEF)
    IMPLEMENTATION = (T.FILE, T.ASSEMBLY_REF, T.EXPORTED_TYPE)
    CUSTOM_ATTRIBUTE_TYPE = (None, None, T.METHOD_DEF, T.MEMBER_REF, None)
    RESOLUTION_SCOPE = (T.MODULE, T.MODULE_REF, T.ASSEMBLY_REF, T.TYPE_REF)
    TYPE_OR_METHOD_DEF = (T.TYPE_DEF, T.METHOD_DEF)

    @property
    def tables(self) -> tuple[MetadataTable | None, ...]:
        return self.value

    @property
    def tag_bits(self) -> int:
        """Number of low bits holding the table tag: ceil(log2(len(tables)))."""
        return (len(self.value) - 1).bit_length()

    @property
    def tag_mask(self) -> int:
        return (1 << self.tag_bits) - 1

    def referenced_tables(self) -> list[MetadataTable]:
        """Tables actually reachable through this kind."""
        return [table for table in self.value if table is not None]


@dataclass(frozen=True)
class CodedIndex:
    """A decoded (table, 0-based row) reference.

    ``NULL_CODED_INDEX`` stands for "no reference" and must never be
    dereferenced.
    """

    table: MetadataTable | None
    row: int

    @property
    def is_null(self) -> bool:
        return self.row < 0

    def __repr__(self) -> str:
        if self.is_null or self.table is None:
            return "CodedIndex(null)"
        return f"CodedIndex({self.table.display_name}, {self.row})"


NULL_CODED_INDEX = CodedIndex(table=None, row=-1)


def encode(table: MetadataTable, row: int, kind: CodedIndexKind) -> int:
    """Pack a table and 0-based row into a coded index of the given kind.

    The low ``kind.tag_bits`` bits hold the table's position in the kind's
    ordering; the remaining bits hold ``row + 1``.
    """
    try:
        tag = kind.tables.index(table)
    except ValueError:
        raise FormatError(f"Table {table.display_name} is not part of coded index {kind.name}") from None
    if row < 0:
        raise FormatError(f"Cannot encode negative row {row} for {table.display_name}")
    return ((row + 1) << kind.tag_bits) | tag


def decode(value: int, kind: CodedIndexKind) -> CodedIndex:
    """Unpack a coded index of the given kind.

    A stored row of 0 yields ``NULL_CODED_INDEX`` whatever the tag.
    """
    tag = value & kind.tag_mask
    stored_row = value >> kind.tag_bits
    if tag >= len(kind.tables) or kind.tables[tag] is None:
        raise FormatError(f"Invalid tag {tag} for coded index {kind.name} (value 0x{value:x})")
    if stored_row == 0:
        return NULL_CODED_INDEX
    return CodedIndex(table=kind.tables[tag], row=stored_row - 1)
