"""HGR page layout and FIL file output."""

# Reference: HGR page (8 KiB, $2000-$3FFF for page 1)
# Scanline y      | Offset in page
# ----------------|----------------------------------------------------------
# y % 8           | * 0400h  (raster line inside a character row)
# (y // 8) % 8    | * 0080h  (character row inside a third of the screen)
# y // 64         | * 0028h  (screen third, 40 bytes each)
# Each 128-byte block holds three 40-byte lines followed by 8 unused bytes.

from __future__ import annotations

from typing import List, Sequence

from .converter import ConversionError, TARGET_HEIGHT, TARGET_WIDTH

PAGE_SIZE = 0x2000
BYTES_PER_LINE = TARGET_WIDTH // 7

# File name "APPLE" and directory metadata.
FIL_HEADER = bytes(
    [
        0xC1, 0xD0, 0xD0, 0xCC, 0xC5, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0,
        0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0xA0, 0x00, 0x00,
        0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x84, 0x00, 0x20, 0xFF, 0x1F,
    ]
)


def hgr_line_offset(y: int) -> int:
    if not 0 <= y < TARGET_HEIGHT:
        raise ConversionError(f"Scanline {y} is outside the HGR screen")
    return (y & 7) * 0x400 + ((y >> 3) & 7) * 0x80 + (y >> 6) * 0x28


def pack_hgr_page(line_bytes: Sequence[bytes]) -> bytes:
    """Arrange per-line bytes in HGR memory order. Missing lines stay zero."""

    if len(line_bytes) > TARGET_HEIGHT:
        raise ConversionError(f"HGR page holds {TARGET_HEIGHT} lines, got {len(line_bytes)}")
    page = bytearray(PAGE_SIZE)
    for y, data in enumerate(line_bytes):
        if len(data) > BYTES_PER_LINE:
            raise ConversionError(
                f"Line {y} has {len(data)} bytes; HGR lines hold {BYTES_PER_LINE}"
            )
        offset = hgr_line_offset(y)
        page[offset : offset + len(data)] = data
    return bytes(page)


def unpack_hgr_page(page: bytes) -> List[bytes]:
    if len(page) == PAGE_SIZE + len(FIL_HEADER) and page.startswith(FIL_HEADER):
        page = page[len(FIL_HEADER) :]
    if len(page) != PAGE_SIZE:
        raise ConversionError("HGR data must be 8 KiB or a 44-byte FIL header plus 8 KiB.")
    lines = []
    for y in range(TARGET_HEIGHT):
        offset = hgr_line_offset(y)
        lines.append(bytes(page[offset : offset + BYTES_PER_LINE]))
    return lines


def to_fil(line_bytes: Sequence[bytes], include_header: bool = True) -> bytes:
    page = pack_hgr_page(line_bytes)
    if not include_header:
        return page
    return FIL_HEADER + page
