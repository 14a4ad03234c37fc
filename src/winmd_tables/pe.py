"""Locate CLI metadata inside a PE/COFF image (.winmd, .dll)."""

from __future__ import annotations

from dataclasses import dataclass

from winmd_tables.cursor import ByteCursor
from winmd_tables.errors import FormatError

DOS_SIGNATURE = b"MZ"
PE_SIGNATURE = b"PE\x00\x00"
PE32_MAGIC = 0x10B
PE32_PLUS_MAGIC = 0x20B
CLI_HEADER_DIRECTORY = 14
SECTION_HEADER_SIZE = 40


@dataclass(frozen=True)
class Section:
    name: str
    virtual_address: int
    virtual_size: int
    raw_size: int
    raw_offset: int

    def contains(self, rva: int) -> bool:
        return self.virtual_address <= rva < self.virtual_address + max(self.virtual_size, self.raw_size)


def is_pe_image(data: bytes | memoryview) -> bool:
    """Return whether the buffer starts with a DOS/PE stub."""
    return bytes(data[:2]) == DOS_SIGNATURE


def read_sections(cursor: ByteCursor, count: int) -> list[Section]:
    sections = []
    for _ in range(count):
        name = cursor.read_bytes(8).rstrip(b"\x00").decode("ascii", errors="replace")
        virtual_size = cursor.read_u32()
        virtual_address = cursor.read_u32()
        raw_size = cursor.read_u32()
        raw_offset = cursor.read_u32()
        cursor.skip(SECTION_HEADER_SIZE - 24)
        sections.append(Section(name, virtual_address, virtual_size, raw_size, raw_offset))
    return sections


def rva_to_offset(sections: list[Section], rva: int) -> int:
    """Translate a relative virtual address to a file offset."""
    for section in sections:
        if section.contains(rva):
            return rva - section.virtual_address + section.raw_offset
    raise FormatError(f"RVA 0x{rva:x} is not inside any section")


def find_metadata(data: bytes | memoryview) -> tuple[int, int]:
    """Return ``(offset, size)`` of the metadata root inside a PE image."""
    cursor = ByteCursor(data)
    if cursor.read_bytes(2) != DOS_SIGNATURE:
        raise FormatError("Missing DOS signature", offset=0)
    cursor.seek(0x3C)
    pe_offset = cursor.read_u32()
    cursor.seek(pe_offset)
    if cursor.read_bytes(4) != PE_SIGNATURE:
        raise FormatError("Missing PE signature", offset=pe_offset)

    # COFF file header
    cursor.skip(2)  # machine
    section_count = cursor.read_u16()
    cursor.skip(12)  # timestamp, symbol table pointer, symbol count
    optional_header_size = cursor.read_u16()
    cursor.skip(2)  # characteristics

    optional_header = cursor.offset
    magic = cursor.read_u16()
    if magic == PE32_MAGIC:
        directory_count_offset = 92
    elif magic == PE32_PLUS_MAGIC:
        directory_count_offset = 108
    else:
        raise FormatError(f"Unknown optional header magic 0x{magic:x}", offset=optional_header)

    cursor.seek(optional_header + directory_count_offset)
    directory_count = cursor.read_u32()
    if directory_count <= CLI_HEADER_DIRECTORY:
        raise FormatError("Image has no CLI header directory", offset=cursor.offset)
    cursor.skip(CLI_HEADER_DIRECTORY * 8)
    cli_rva = cursor.read_u32()
    cli_size = cursor.read_u32()
    if cli_rva == 0 or cli_size == 0:
        raise FormatError("Image is not a CLI image", offset=cursor.offset - 8)

    cursor.seek(optional_header + optional_header_size)
    sections = read_sections(cursor, section_count)

    cursor.seek(rva_to_offset(sections, cli_rva))
    cursor.skip(8)  # cb, runtime version
    metadata_rva = cursor.read_u32()
    metadata_size = cursor.read_u32()
    return rva_to_offset(sections, metadata_rva), metadata_size
