"""Tests for the byte cursor."""

import struct

import pytest

from tests._fixtures.image_builder import compress_unsigned
from winmd_tables.cursor import ByteCursor
from winmd_tables.errors import FormatError


class TestFixedReads:
    """Tests for fixed-width little-endian reads."""

    def test_unsigned_reads(self):
        """Test reading unsigned integers of every width."""
        data = struct.pack("<BHIQ", 0xFE, 0xBEEF, 0xDEADBEEF, 0x0102030405060708)
        cursor = ByteCursor(data)

        assert cursor.read_u8() == 0xFE
        assert cursor.read_u16() == 0xBEEF
        assert cursor.read_u32() == 0xDEADBEEF
        assert cursor.read_u64() == 0x0102030405060708
        assert cursor.is_exhausted()

    def test_signed_reads(self):
        """Test reading signed integers of every width."""
        data = struct.pack("<bhiq", -1, -2, -3, -4)
        cursor = ByteCursor(data)

        assert cursor.read_i8() == -1
        assert cursor.read_i16() == -2
        assert cursor.read_i32() == -3
        assert cursor.read_i64() == -4

    def test_float_reads(self):
        """Test reading IEEE single and double precision values."""
        cursor = ByteCursor(struct.pack("<fd", 1.5, -2.25))

        assert cursor.read_f32() == 1.5
        assert cursor.read_f64() == -2.25

    def test_read_past_end_reports_offset(self):
        """Test that reading past the end fails with the current offset."""
        cursor = ByteCursor(b"\x01\x02\x03")
        cursor.read_u16()

        with pytest.raises(FormatError) as info:
            cursor.read_u16()
        assert info.value.offset == 2

    def test_offset_is_absolute(self):
        """Test that offsets are relative to the whole buffer, not the cursor range."""
        cursor = ByteCursor(b"\x00" * 10, start=4, end=8)

        assert cursor.offset == 4
        cursor.skip(3)
        assert cursor.offset == 7
        assert cursor.remaining == 1

    def test_invalid_range(self):
        """Test that a cursor range outside the buffer is rejected."""
        with pytest.raises(FormatError):
            ByteCursor(b"\x00" * 4, start=2, end=8)


class TestCompressedUnsignedInt:
    """Tests for ECMA-335 compressed unsigned integers."""

    @pytest.mark.parametrize(
        "value,width",
        [
            (0, 1),
            (0x7F, 1),
            (0x80, 2),
            (0x3FFF, 2),
            (0x4000, 4),
            (0x1FFFFFFF, 4),
        ],
    )
    def test_width_boundaries(self, value, width):
        """Test values on both sides of each width-selection boundary."""
        encoded = compress_unsigned(value)
        assert len(encoded) == width

        cursor = ByteCursor(encoded)
        assert cursor.read_compressed_unsigned_int() == value
        assert cursor.is_exhausted()

    def test_round_trip_across_range(self):
        """Test encode then decode over a spread of values in [0, 0x1FFFFFFF]."""
        values = list(range(0, 0x5000)) + list(range(0x4000, 0x1FFFFFFF, 0x10001)) + [0x1FFFFFFF]
        for value in values:
            assert ByteCursor(compress_unsigned(value)).read_compressed_unsigned_int() == value

    def test_known_encodings(self):
        """Test the worked examples from ECMA-335 II.23.2."""
        assert ByteCursor(b"\x03").read_compressed_unsigned_int() == 0x03
        assert ByteCursor(b"\x80\x80").read_compressed_unsigned_int() == 0x80
        assert ByteCursor(b"\xbf\xff").read_compressed_unsigned_int() == 0x3FFF
        assert ByteCursor(b"\xc0\x00\x40\x00").read_compressed_unsigned_int() == 0x4000
        assert ByteCursor(b"\xdf\xff\xff\xff").read_compressed_unsigned_int() == 0x1FFFFFFF

    @pytest.mark.parametrize("lead", [0xE0, 0xF0, 0xFF])
    def test_invalid_lead_byte(self, lead):
        """Test that a lead byte with the 111 prefix is a format error."""
        cursor = ByteCursor(bytes([0x00, lead, 0, 0, 0]))
        cursor.skip(1)

        with pytest.raises(FormatError) as info:
            cursor.read_compressed_unsigned_int()
        assert info.value.offset == 1

    def test_truncated_value(self):
        """Test that a multi-byte value cut short is a format error."""
        with pytest.raises(FormatError):
            ByteCursor(b"\xc0\x00").read_compressed_unsigned_int()


class TestSlicing:
    """Tests for sub-cursors and helpers."""

    def test_slice_is_independent(self):
        """Test that a slice reads its own range and the parent skips past it."""
        cursor = ByteCursor(b"\x01\x02\x03\x04\x05")
        cursor.skip(1)
        sub = cursor.slice(2)

        assert cursor.read_u8() == 0x04
        assert sub.read_u8() == 0x02
        assert sub.read_u8() == 0x03
        assert sub.is_exhausted()
        with pytest.raises(FormatError):
            sub.read_u8()

    def test_slice_too_long(self):
        """Test that carving beyond the end fails."""
        with pytest.raises(FormatError):
            ByteCursor(b"\x01\x02").slice(3)

    def test_read_null_terminated(self):
        """Test reading a NUL-terminated string consumes the terminator."""
        cursor = ByteCursor(b"abc\x00d")

        assert cursor.read_null_terminated() == b"abc"
        assert cursor.read_u8() == ord("d")

    def test_unterminated_string(self):
        """Test that a string without terminator is a format error."""
        with pytest.raises(FormatError):
            ByteCursor(b"abc").read_null_terminated()

    def test_align(self):
        """Test alignment relative to the cursor start."""
        cursor = ByteCursor(b"\x00" * 16, start=2)
        cursor.skip(1)
        cursor.align(4)

        assert cursor.offset == 6
