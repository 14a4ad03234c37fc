"""Sequential little-endian reader over an immutable byte region."""

from __future__ import annotations

import struct

from winmd_tables.errors import FormatError

_U8 = struct.Struct("<B")
_I8 = struct.Struct("<b")
_U16 = struct.Struct("<H")
_I16 = struct.Struct("<h")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")
_F32 = struct.Struct("<f")
_F64 = struct.Struct("<d")


class ByteCursor:
    """Reads fixed-width and compressed values from a byte region.

    The cursor never copies or modifies the underlying buffer. All offsets
    reported by the cursor (and carried by its errors) are absolute offsets
    into that buffer.
    """

    def __init__(self, data: bytes | memoryview, start: int = 0, end: int | None = None) -> None:
        """Initialize a cursor.

        Args:
            data: The backing buffer.
            start: Absolute offset of the first readable byte.
            end: Absolute offset one past the last readable byte. Defaults
                to the end of the buffer.
        """
        if end is None:
            end = len(data)
        if start < 0 or end > len(data) or start > end:
            raise FormatError(
                f"Cursor range [{start}, {end}) outside buffer of {len(data)} bytes",
                offset=start,
            )
        self.data = data
        self.start = start
        self.end = end
        self._pos = start

    @property
    def offset(self) -> int:
        """Absolute offset of the next byte to read."""
        return self._pos

    @property
    def remaining(self) -> int:
        """Number of unread bytes."""
        return self.end - self._pos

    def is_exhausted(self) -> bool:
        """Return whether every byte has been read."""
        return self._pos >= self.end

    def _take(self, size: int) -> int:
        """Reserve ``size`` bytes and return their start offset."""
        if size < 0 or self._pos + size > self.end:
            raise FormatError(
                f"Read of {size} bytes past end of data (end=0x{self.end:x})",
                offset=self._pos,
            )
        pos = self._pos
        self._pos += size
        return pos

    def _unpack(self, fmt: struct.Struct) -> int | float:
        pos = self._take(fmt.size)
        return fmt.unpack_from(self.data, pos)[0]

    def read_u8(self) -> int:
        return self._unpack(_U8)  # type: ignore[return-value]

    def read_i8(self) -> int:
        return self._unpack(_I8)  # type: ignore[return-value]

    def read_u16(self) -> int:
        return self._unpack(_U16)  # type: ignore[return-value]

    def read_i16(self) -> int:
        return self._unpack(_I16)  # type: ignore[return-value]

    def read_u32(self) -> int:
        return self._unpack(_U32)  # type: ignore[return-value]

    def read_i32(self) -> int:
        return self._unpack(_I32)  # type: ignore[return-value]

    def read_u64(self) -> int:
        return self._unpack(_U64)  # type: ignore[return-value]

    def read_i64(self) -> int:
        return self._unpack(_I64)  # type: ignore[return-value]

    def read_f32(self) -> float:
        return self._unpack(_F32)

    def read_f64(self) -> float:
        return self._unpack(_F64)

    def read_uint(self, size: int) -> int:
        """Read an unsigned integer column of 2 or 4 bytes."""
        if size == 2:
            return self.read_u16()
        if size == 4:
            return self.read_u32()
        raise FormatError(f"Unsupported column width: {size}", offset=self._pos)

    def read_bytes(self, size: int) -> bytes:
        """Read ``size`` raw bytes."""
        pos = self._take(size)
        return bytes(self.data[pos : pos + size])

    def peek_u8(self) -> int:
        """Return the next byte without consuming it."""
        if self._pos >= self.end:
            raise FormatError("Read of 1 bytes past end of data", offset=self._pos)
        return self.data[self._pos]

    def read_compressed_unsigned_int(self) -> int:
        """Read an ECMA-335 compressed unsigned integer (II.23.2).

        The top bits of the first byte select the width:
        ``0xxxxxxx`` is one byte, ``10xxxxxx`` two bytes and ``110xxxxx``
        four bytes, all big-endian.
        """
        start = self._pos
        first = self.read_u8()
        if first & 0x80 == 0:
            return first
        if first & 0xC0 == 0x80:
            return ((first & 0x3F) << 8) | self.read_u8()
        if first & 0xE0 == 0xC0:
            rest = self.read_bytes(3)
            return ((first & 0x1F) << 24) | (rest[0] << 16) | (rest[1] << 8) | rest[2]
        raise FormatError(f"Invalid compressed integer lead byte 0x{first:02x}", offset=start)

    def read_null_terminated(self, max_length: int | None = None) -> bytes:
        """Read bytes up to (and consume) a NUL terminator."""
        limit = self.end if max_length is None else min(self.end, self._pos + max_length)
        pos = self._pos
        while pos < limit:
            if self.data[pos] == 0:
                value = bytes(self.data[self._pos : pos])
                self._pos = pos + 1
                return value
            pos += 1
        raise FormatError("Unterminated string", offset=self._pos)

    def skip(self, size: int) -> None:
        """Advance the read position by ``size`` bytes."""
        self._take(size)

    def seek(self, offset: int) -> None:
        """Move to an absolute offset within the cursor's range."""
        if offset < self.start or offset > self.end:
            raise FormatError(f"Seek outside cursor range [0x{self.start:x}, 0x{self.end:x})", offset=offset)
        self._pos = offset

    def align(self, alignment: int) -> None:
        """Skip padding up to the next multiple of ``alignment`` relative to the cursor start."""
        misalignment = (self._pos - self.start) % alignment
        if misalignment:
            self.skip(alignment - misalignment)

    def slice(self, size: int) -> ByteCursor:
        """Carve an independent sub-cursor over the next ``size`` bytes.

        The parent cursor advances past the carved region.
        """
        pos = self._take(size)
        return ByteCursor(self.data, pos, pos + size)

    def __repr__(self) -> str:
        return f"ByteCursor(start=0x{self.start:x}, offset=0x{self._pos:x}, end=0x{self.end:x})"
