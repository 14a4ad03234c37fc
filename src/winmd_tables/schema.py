"""Column layouts and row decoding for the metadata tables."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from winmd_tables.coded_index import CodedIndexKind, decode
from winmd_tables.cursor import ByteCursor
from winmd_tables.errors import FormatError
from winmd_tables.tables import MetadataTable


class HeapColumn:
    """Heap index column markers."""

    STRING = "string"
    GUID = "guid"
    BLOB = "blob"


# A column is a fixed width (int), a heap name, a target table (simple
# index) or a coded index kind.
Column = Union[int, str, MetadataTable, CodedIndexKind]

T = MetadataTable
K = CodedIndexKind

TABLE_LAYOUTS: dict[MetadataTable, tuple[Column, ...]] = {
    T.MODULE: (2, HeapColumn.STRING, HeapColumn.GUID, HeapColumn.GUID, HeapColumn.GUID),
    T.TYPE_REF: (K.RESOLUTION_SCOPE, HeapColumn.STRING, HeapColumn.STRING),
    T.TYPE_DEF: (4, HeapColumn.STRING, HeapColumn.STRING, K.TYPE_DEF_OR_REF, T.FIELD, T.METHOD_DEF),
    T.FIELD_PTR: (T.FIELD,),
    T.FIELD: (2, HeapColumn.STRING, HeapColumn.BLOB),
    T.METHOD_PTR: (T.METHOD_DEF,),
    T.METHOD_DEF: (4, 2, 2, HeapColumn.STRING, HeapColumn.BLOB, T.PARAM),
    T.PARAM_PTR: (T.PARAM,),
    T.PARAM: (2, 2, HeapColumn.STRING),
    T.INTERFACE_IMPL: (T.TYPE_DEF, K.TYPE_DEF_OR_REF),
    T.MEMBER_REF: (K.MEMBER_REF_PARENT, HeapColumn.STRING, HeapColumn.BLOB),
    # Type is one byte followed by one byte of padding
    T.CONSTANT: (2, K.HAS_CONSTANT, HeapColumn.BLOB),
    T.CUSTOM_ATTRIBUTE: (K.HAS_CUSTOM_ATTRIBUTE, K.CUSTOM_ATTRIBUTE_TYPE, HeapColumn.BLOB),
    T.FIELD_MARSHAL: (K.HAS_FIELD_MARSHAL, HeapColumn.BLOB),
    T.DECL_SECURITY: (2, K.HAS_DECL_SECURITY, HeapColumn.BLOB),
    T.CLASS_LAYOUT: (2, 4, T.TYPE_DEF),
    T.FIELD_LAYOUT: (4, T.FIELD),
    T.STAND_ALONE_SIG: (HeapColumn.BLOB,),
    T.EVENT_MAP: (T.TYPE_DEF, T.EVENT),
    T.EVENT_PTR: (T.EVENT,),
    T.EVENT: (2, HeapColumn.STRING, K.TYPE_DEF_OR_REF),
    T.PROPERTY_MAP: (T.TYPE_DEF, T.PROPERTY),
    T.PROPERTY_PTR: (T.PROPERTY,),
    T.PROPERTY: (2, HeapColumn.STRING, HeapColumn.BLOB),
    T.METHOD_SEMANTICS: (2, T.METHOD_DEF, K.HAS_SEMANTICS),
    T.METHOD_IMPL: (T.TYPE_DEF, K.METHOD_DEF_OR_REF, K.METHOD_DEF_OR_REF),
    T.MODULE_REF: (HeapColumn.STRING,),
    T.TYPE_SPEC: (HeapColumn.BLOB,),
    T.IMPL_MAP: (2, K.MEMBER_FORWARDED, HeapColumn.STRING, T.MODULE_REF),
    T.FIELD_RVA: (4, T.FIELD),
    T.ENC_LOG: (4, 4),
    T.ENC_MAP: (4,),
    T.ASSEMBLY: (4, 2, 2, 2, 2, 4, HeapColumn.BLOB, HeapColumn.STRING, HeapColumn.STRING),
    T.ASSEMBLY_PROCESSOR: (4,),
    T.ASSEMBLY_OS: (4, 4, 4),
    T.ASSEMBLY_REF: (2, 2, 2, 2, 4, HeapColumn.BLOB, HeapColumn.STRING, HeapColumn.STRING, HeapColumn.BLOB),
    T.ASSEMBLY_REF_PROCESSOR: (4, T.ASSEMBLY_REF),
    T.ASSEMBLY_REF_OS: (4, 4, 4, T.ASSEMBLY_REF),
    T.FILE: (4, HeapColumn.STRING, HeapColumn.BLOB),
    T.EXPORTED_TYPE: (4, 4, HeapColumn.STRING, HeapColumn.STRING, K.IMPLEMENTATION),
    T.MANIFEST_RESOURCE: (4, 4, HeapColumn.STRING, K.IMPLEMENTATION),
    T.NESTED_CLASS: (T.TYPE_DEF, T.TYPE_DEF),
    T.GENERIC_PARAM: (2, 2, K.TYPE_OR_METHOD_DEF, HeapColumn.STRING),
    T.METHOD_SPEC: (K.METHOD_DEF_OR_REF, HeapColumn.BLOB),
    T.GENERIC_PARAM_CONSTRAINT: (T.GENERIC_PARAM, K.TYPE_DEF_OR_REF),
}

# HeapSizes flags in the table stream header
HEAP_STRING_WIDE = 0x01
HEAP_GUID_WIDE = 0x02
HEAP_BLOB_WIDE = 0x04
HEAP_EXTRA_DATA = 0x40


@dataclass(frozen=True)
class IndexSizes:
    """Column width selection derived from the table stream header."""

    heap_sizes: int
    row_counts: dict[MetadataTable, int]

    def row_count(self, table: MetadataTable) -> int:
        return self.row_counts.get(table, 0)

    def heap_width(self, heap: str) -> int:
        flag = {HeapColumn.STRING: HEAP_STRING_WIDE, HeapColumn.GUID: HEAP_GUID_WIDE, HeapColumn.BLOB: HEAP_BLOB_WIDE}[heap]
        return 4 if self.heap_sizes & flag else 2

    def table_index_width(self, table: MetadataTable) -> int:
        return 4 if self.row_count(table) >= 1 << 16 else 2

    def coded_index_width(self, kind: CodedIndexKind) -> int:
        limit = 1 << (16 - kind.tag_bits)
        largest = max(self.row_count(table) for table in kind.referenced_tables())
        return 4 if largest >= limit else 2

    def column_width(self, column: Column) -> int:
        if isinstance(column, int):
            return column
        if isinstance(column, str):
            return self.heap_width(column)
        if isinstance(column, MetadataTable):
            return self.table_index_width(column)
        return self.coded_index_width(column)


class Table:
    """Fixed-width rows of one metadata table inside the table stream."""

    def __init__(self, table: MetadataTable, data: bytes | memoryview, offset: int, count: int, sizes: IndexSizes) -> None:
        """Initialize a table view.

        Args:
            table: Which table this is.
            data: The whole metadata buffer.
            offset: Absolute offset of the first row.
            count: Number of rows.
            sizes: Column width selection for this image.
        """
        self.table = table
        self.data = data
        self.offset = offset
        self._count = count
        self._columns = TABLE_LAYOUTS[table]
        self._widths = tuple(sizes.column_width(column) for column in self._columns)
        self._record_size = sum(self._widths)

    @property
    def count(self) -> int:
        """Return the number of rows in the table."""
        return self._count

    @property
    def record_size(self) -> int:
        return self._record_size

    @property
    def size_bytes(self) -> int:
        return self._count * self._record_size

    def _record_offset(self, index: int) -> int:
        """Get byte offset for a 0-based row index."""
        return self.offset + index * self._record_size

    def get(self, index: int) -> tuple[Any, ...]:
        """Get the columns of a 0-based row.

        Coded index columns are decoded; simple index columns stay 1-based
        as stored.
        """
        raw = self.get_raw(index)
        return tuple(
            decode(value, column) if isinstance(column, CodedIndexKind) else value
            for column, value in zip(self._columns, raw)
        )

    def get_raw(self, index: int) -> tuple[int, ...]:
        """Get the stored integers of a 0-based row without decoding anything."""
        if index < 0 or index >= self._count:
            raise FormatError(
                f"{self.table.display_name} row {index} out of range [0, {self._count})",
                offset=self.offset,
            )
        start = self._record_offset(index)
        cursor = ByteCursor(self.data, start, start + self._record_size)
        return tuple(cursor.read_uint(width) for width in self._widths)

    def get_column(self, index: int, column: int) -> Any:
        """Get a single column of a 0-based row."""
        return self.get(index)[column]
