"""The four metadata heaps: #Strings, #Blob, #GUID and #US."""

from __future__ import annotations

import uuid
from typing import TypeVar

from winmd_tables.cursor import ByteCursor
from winmd_tables.errors import FormatError
from winmd_tables.types import LazyString

GUID_SIZE = 16

H = TypeVar("H", bound="Heap")


class Heap:
    """A named byte region inside the metadata buffer."""

    def __init__(self, name: str, data: bytes | memoryview, offset: int, size: int) -> None:
        if offset < 0 or offset + size > len(data):
            raise FormatError(f"Stream {name} [0x{offset:x}, +0x{size:x}) exceeds buffer", offset=offset)
        self.name = name
        self.data = data
        self.offset = offset
        self.size = size

    def _check(self, index: int) -> int:
        """Translate a heap-relative index to an absolute offset."""
        if index < 0 or index >= self.size:
            raise FormatError(f"{self.name} index 0x{index:x} out of range (size 0x{self.size:x})", offset=self.offset)
        return self.offset + index

    def cursor_at(self, index: int) -> ByteCursor:
        """Return a cursor from ``index`` to the end of the heap."""
        return ByteCursor(self.data, self._check(index), self.offset + self.size)


class StringHeap(Heap):
    """NUL-terminated UTF-8 identifiers."""

    def get(self, index: int) -> str:
        if index == 0 and self.size == 0:
            return ""
        raw = self.cursor_at(index).read_null_terminated()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FormatError(
                f"{self.name} entry 0x{index:x} is not valid UTF-8: {exc.reason}",
                offset=self.offset + index + exc.start,
            ) from exc


class BlobHeap(Heap):
    """Length-prefixed binary values."""

    def get(self, index: int) -> ByteCursor:
        """Return a cursor over the blob's content, excluding its length prefix."""
        if index == 0 and self.size == 0:
            return ByteCursor(self.data, self.offset, self.offset)
        cursor = self.cursor_at(index)
        length = cursor.read_compressed_unsigned_int()
        return cursor.slice(length)

    def get_lazy_string(self, index: int) -> LazyString:
        """Return the blob's content as a lazily decoded UTF-8 string."""
        blob = self.get(index)
        return LazyString(self.data, blob.offset, blob.remaining)


class GuidHeap(Heap):
    """Array of 16-byte GUIDs addressed by 1-based index."""

    @property
    def count(self) -> int:
        return self.size // GUID_SIZE

    def get(self, index: int) -> uuid.UUID | None:
        if index == 0:
            return None
        if index > self.count:
            raise FormatError(f"{self.name} index {index} out of range [1, {self.count}]", offset=self.offset)
        start = self.offset + (index - 1) * GUID_SIZE
        return uuid.UUID(bytes_le=bytes(self.data[start : start + GUID_SIZE]))


class UserStringHeap(BlobHeap):
    """Length-prefixed UTF-16 string literals."""

    def get_string(self, index: int) -> str:
        blob = self.get(index)
        raw = blob.read_bytes(blob.remaining)
        # Odd lengths carry a trailing flag byte
        if len(raw) % 2:
            raw = raw[:-1]
        try:
            return raw.decode("utf-16-le")
        except UnicodeDecodeError as exc:
            raise FormatError(
                f"{self.name} entry 0x{index:x} is not valid UTF-16: {exc.reason}",
                offset=blob.start + exc.start,
            ) from exc


def empty_heap(cls: type[H], name: str, data: bytes | memoryview) -> H:
    """Create a zero-sized heap for an optional stream that is absent."""
    return cls(name, data, 0, 0)
