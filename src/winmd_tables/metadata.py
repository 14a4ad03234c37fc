"""Metadata store: root header, streams, heaps and row tables."""

from __future__ import annotations

import bisect
import uuid
from pathlib import Path

from winmd_tables import pe
from winmd_tables.coded_index import CodedIndex
from winmd_tables.cursor import ByteCursor
from winmd_tables.errors import FormatError
from winmd_tables.heaps import BlobHeap, GuidHeap, StringHeap, UserStringHeap, empty_heap
from winmd_tables.logging import get_logger
from winmd_tables.schema import HEAP_EXTRA_DATA, TABLE_LAYOUTS, IndexSizes, Table
from winmd_tables.tables import (
    CustomAttributeRow,
    FieldRow,
    MemberRefRow,
    MetadataTable,
    MethodDefRow,
    ParamRow,
    TypeDefRow,
    TypeRefRow,
)
from winmd_tables.types import LazyString, QualifiedName

logger = get_logger("metadata")

METADATA_SIGNATURE = 0x424A5342  # "BSJB"
STRINGS_STREAM = "#Strings"
BLOB_STREAM = "#Blob"
GUID_STREAM = "#GUID"
USER_STRINGS_STREAM = "#US"
TABLE_STREAMS = ("#~", "#-")
MAX_STREAM_NAME = 32


class MetadataStore:
    """Read-only access to the heaps and tables of one metadata image.

    Built once from a fully loaded buffer; nothing is modified afterwards
    except lazily built lookup indexes, which are assigned whole.
    """

    def __init__(self, data: bytes | memoryview, root_offset: int = 0, root_size: int | None = None) -> None:
        """Parse a metadata image.

        Args:
            data: Buffer containing the metadata root.
            root_offset: Absolute offset of the metadata root in ``data``.
            root_size: Size of the metadata; defaults to the rest of the buffer.
        """
        self.data = data
        self.root_offset = root_offset
        if root_size is None:
            root_size = len(data) - root_offset
        self.root_size = root_size

        self.version = ""
        self.streams: dict[str, tuple[int, int]] = {}
        self._read_root()

        self.strings = StringHeap(STRINGS_STREAM, data, *self._require_stream(STRINGS_STREAM))
        self.blobs = BlobHeap(BLOB_STREAM, data, *self._require_stream(BLOB_STREAM))
        self.guids = GuidHeap(GUID_STREAM, data, *self._require_stream(GUID_STREAM))
        if USER_STRINGS_STREAM in self.streams:
            self.user_strings = UserStringHeap(USER_STRINGS_STREAM, data, *self.streams[USER_STRINGS_STREAM])
        else:
            self.user_strings = empty_heap(UserStringHeap, USER_STRINGS_STREAM, data)

        self.tables: dict[MetadataTable, Table] = {}
        self._read_tables()
        self._index_custom_attributes()
        self._type_defs_by_name: dict[QualifiedName, int] | None = None

        logger.debug(
            "Loaded metadata %s: %d streams, %d tables, %d type definitions, %d custom attributes",
            self.version,
            len(self.streams),
            len(self.tables),
            self.row_count(MetadataTable.TYPE_DEF),
            self.row_count(MetadataTable.CUSTOM_ATTRIBUTE),
        )

    @classmethod
    def from_bytes(cls, data: bytes | memoryview) -> MetadataStore:
        """Create a store from a bare metadata root or a PE image containing one."""
        if pe.is_pe_image(data):
            offset, size = pe.find_metadata(data)
            return cls(data, offset, size)
        return cls(data)

    @classmethod
    def load(cls, path: Path | str) -> MetadataStore:
        """Read a metadata file (.winmd or raw metadata) into memory and parse it."""
        return cls.from_bytes(Path(path).read_bytes())

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _read_root(self) -> None:
        """Read the metadata root header and stream directory (ECMA-335 II.24.2.1)."""
        cursor = ByteCursor(self.data, self.root_offset, self.root_offset + self.root_size)
        signature = cursor.read_u32()
        if signature != METADATA_SIGNATURE:
            raise FormatError(f"Bad metadata signature 0x{signature:08x}", offset=self.root_offset)
        cursor.skip(2 + 2 + 4)  # major, minor, reserved
        version_length = cursor.read_u32()
        self.version = cursor.read_bytes(version_length).rstrip(b"\x00").decode("ascii", errors="replace")
        cursor.skip(2)  # flags
        stream_count = cursor.read_u16()

        for _ in range(stream_count):
            offset = cursor.read_u32()
            size = cursor.read_u32()
            name_offset = cursor.offset
            name = cursor.read_null_terminated(MAX_STREAM_NAME).decode("ascii", errors="replace")
            cursor.align(4)
            if offset + size > self.root_size:
                raise FormatError(f"Stream {name} extends past end of metadata", offset=name_offset)
            self.streams[name] = (self.root_offset + offset, size)

    def _require_stream(self, name: str) -> tuple[int, int]:
        if name not in self.streams:
            raise FormatError(f"Missing required stream {name}", offset=self.root_offset)
        return self.streams[name]

    def _read_tables(self) -> None:
        """Read the table stream header and lay out every present table (ECMA-335 II.24.2.6)."""
        for name in TABLE_STREAMS:
            if name in self.streams:
                stream_offset, stream_size = self.streams[name]
                break
        else:
            raise FormatError("Missing required stream #~", offset=self.root_offset)

        cursor = ByteCursor(self.data, stream_offset, stream_offset + stream_size)
        cursor.skip(4 + 1 + 1)  # reserved, major, minor
        heap_sizes = cursor.read_u8()
        cursor.skip(1)  # reserved
        valid = cursor.read_u64()
        cursor.skip(8)  # sorted

        present: list[MetadataTable] = []
        for table_id in range(64):
            if not valid & (1 << table_id):
                continue
            try:
                table = MetadataTable(table_id)
            except ValueError:
                raise FormatError(f"#~ contains unknown table 0x{table_id:02x}", offset=stream_offset) from None
            present.append(table)

        row_counts = {table: cursor.read_u32() for table in present}
        if heap_sizes & HEAP_EXTRA_DATA:
            cursor.skip(4)

        sizes = IndexSizes(heap_sizes=heap_sizes, row_counts=row_counts)
        for table in present:
            if table not in TABLE_LAYOUTS:
                raise FormatError(f"#~ table {table.display_name} has no known layout", offset=cursor.offset)
            view = Table(table, self.data, cursor.offset, row_counts[table], sizes)
            if view.size_bytes > cursor.remaining:
                raise FormatError(f"#~ table {table.display_name} is truncated", offset=cursor.offset)
            cursor.skip(view.size_bytes)
            self.tables[table] = view

    def _index_custom_attributes(self) -> None:
        """Sort CustomAttribute rows by stored parent so lookups are a range search."""
        table = self.tables.get(MetadataTable.CUSTOM_ATTRIBUTE)
        if table is None:
            self._attribute_order: list[int] = []
            self._attribute_parents: list[int] = []
            return
        parents = [table.get_raw(i)[0] for i in range(table.count)]
        order = sorted(range(table.count), key=parents.__getitem__)
        self._attribute_order = order
        self._attribute_parents = [parents[i] for i in order]

    # ------------------------------------------------------------------
    # Heaps
    # ------------------------------------------------------------------

    def get_string(self, offset: int) -> str:
        """Get an identifier from the #Strings heap."""
        return self.strings.get(offset)

    def get_blob(self, offset: int) -> ByteCursor:
        """Get a cursor over a blob from the #Blob heap."""
        return self.blobs.get(offset)

    def get_blob_string(self, offset: int) -> LazyString:
        """Get a blob's content as a lazily decoded string."""
        return self.blobs.get_lazy_string(offset)

    def get_guid(self, index: int) -> uuid.UUID | None:
        """Get a GUID from the #GUID heap by 1-based index (0 is null)."""
        return self.guids.get(index)

    def get_user_string(self, offset: int) -> str:
        """Get a string literal from the #US heap."""
        return self.user_strings.get_string(offset)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def row_count(self, table: MetadataTable) -> int:
        """Return the number of rows in a table (0 when absent)."""
        view = self.tables.get(table)
        return view.count if view is not None else 0

    def get_table(self, table: MetadataTable) -> Table:
        view = self.tables.get(table)
        if view is None:
            raise FormatError(f"Table {table.display_name} is not present")
        return view

    def get_row(self, table: MetadataTable, index: int) -> tuple:
        """Get the columns of any table row (0-based)."""
        return self.get_table(table).get(index)

    def get_type_def(self, index: int) -> TypeDefRow:
        flags, name, namespace, extends, field_list, method_list = self.get_row(MetadataTable.TYPE_DEF, index)
        return TypeDefRow(flags, name, namespace, extends, field_list - 1, method_list - 1)

    def get_type_ref(self, index: int) -> TypeRefRow:
        return TypeRefRow(*self.get_row(MetadataTable.TYPE_REF, index))

    def get_field(self, index: int) -> FieldRow:
        return FieldRow(*self.get_row(MetadataTable.FIELD, index))

    def get_method_def(self, index: int) -> MethodDefRow:
        rva, impl_flags, flags, name, signature, param_list = self.get_row(MetadataTable.METHOD_DEF, index)
        return MethodDefRow(rva, impl_flags, flags, name, signature, param_list - 1)

    def get_param(self, index: int) -> ParamRow:
        return ParamRow(*self.get_row(MetadataTable.PARAM, index))

    def get_member_ref(self, index: int) -> MemberRefRow:
        return MemberRefRow(*self.get_row(MetadataTable.MEMBER_REF, index))

    def get_custom_attribute(self, index: int) -> CustomAttributeRow:
        return CustomAttributeRow(*self.get_row(MetadataTable.CUSTOM_ATTRIBUTE, index))

    def get_custom_attributes(self, parent: int) -> list[CustomAttributeRow]:
        """Get the CustomAttribute rows whose stored parent equals ``parent``.

        Args:
            parent: Encoded HasCustomAttribute coded index.

        Returns:
            Matching rows in table order.
        """
        lo = bisect.bisect_left(self._attribute_parents, parent)
        hi = bisect.bisect_right(self._attribute_parents, parent)
        return [self.get_custom_attribute(i) for i in self._attribute_order[lo:hi]]

    # ------------------------------------------------------------------
    # Row lists and names
    # ------------------------------------------------------------------

    def _list_range(self, owner: MetadataTable, index: int, column: int, target: MetadataTable) -> range:
        """Rows of ``target`` owned by row ``index`` of ``owner`` (run until the next owner's start)."""
        owner_table = self.get_table(owner)
        start = owner_table.get_column(index, column) - 1
        if index + 1 < owner_table.count:
            end = owner_table.get_column(index + 1, column) - 1
        else:
            end = self.row_count(target)
        return range(start, max(start, end))

    def field_range(self, type_def: int) -> range:
        """0-based Field rows belonging to a TypeDef."""
        return self._list_range(MetadataTable.TYPE_DEF, type_def, 4, MetadataTable.FIELD)

    def method_range(self, type_def: int) -> range:
        """0-based MethodDef rows belonging to a TypeDef."""
        return self._list_range(MetadataTable.TYPE_DEF, type_def, 5, MetadataTable.METHOD_DEF)

    def param_range(self, method_def: int) -> range:
        """0-based Param rows belonging to a MethodDef."""
        return self._list_range(MetadataTable.METHOD_DEF, method_def, 5, MetadataTable.PARAM)

    def type_def_name(self, index: int) -> QualifiedName:
        row = self.get_type_def(index)
        return QualifiedName(self.get_string(row.type_namespace), self.get_string(row.type_name))

    def type_ref_name(self, index: int) -> QualifiedName:
        row = self.get_type_ref(index)
        return QualifiedName(self.get_string(row.type_namespace), self.get_string(row.type_name))

    def find_type_def(self, name: QualifiedName) -> int | None:
        """Return the 0-based TypeDef row with the given name, if any."""
        if self._type_defs_by_name is None:
            by_name: dict[QualifiedName, int] = {}
            for index in range(self.row_count(MetadataTable.TYPE_DEF)):
                by_name.setdefault(self.type_def_name(index), index)
            self._type_defs_by_name = by_name
        return self._type_defs_by_name.get(name)

    def describe(self, index: CodedIndex) -> str:
        """Short human-readable label of a referenced row, for diagnostics."""
        if index.is_null or index.table is None:
            return "null"
        return f"{index.table.display_name}[{index.row}]"
