from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "simple_hgr_converter/src"))

from simple_hgr_converter.converter import (
    APPLE2_PALETTE,
    ConversionError,
    format_palette_text,
    load_palette,
    parse_color,
    parse_palette_text,
)
from simple_hgr_converter.hgr import (
    FIL_HEADER,
    PAGE_SIZE,
    hgr_line_offset,
    pack_hgr_page,
    to_fil,
    unpack_hgr_page,
)


def _palette_text(newline: str = "\r\n") -> str:
    return newline.join(f"{r}\t{g}\t{b}" for r, g, b, _a in APPLE2_PALETTE) + newline


def test_hgr_line_offsets() -> None:
    assert hgr_line_offset(0) == 0x0000
    assert hgr_line_offset(1) == 0x0400
    assert hgr_line_offset(8) == 0x0080
    assert hgr_line_offset(64) == 0x0028
    assert hgr_line_offset(128) == 0x0050
    assert hgr_line_offset(191) == 0x1FD0


def test_hgr_line_offset_out_of_range() -> None:
    with pytest.raises(ConversionError):
        hgr_line_offset(192)


def test_pack_hgr_page_places_lines() -> None:
    lines = [bytes([y]) * 40 for y in range(192)]
    page = pack_hgr_page(lines)

    assert len(page) == PAGE_SIZE
    assert page[0x0400:0x0428] == bytes([1]) * 40
    assert page[0x0028:0x0050] == bytes([64]) * 40
    # Screen holes between the three 40-byte lines of each 128-byte block.
    assert page[0x0078:0x0080] == bytes(8)
    assert unpack_hgr_page(page) == lines


def test_pack_hgr_page_leaves_missing_lines_blank() -> None:
    page = pack_hgr_page([b"\xff\x01"])
    assert page[:2] == b"\xff\x01"
    assert page[2:] == bytes(PAGE_SIZE - 2)


def test_pack_hgr_page_rejects_oversize_input() -> None:
    with pytest.raises(ConversionError):
        pack_hgr_page([bytes(41)])
    with pytest.raises(ConversionError):
        pack_hgr_page([bytes(40)] * 193)


def test_to_fil_header() -> None:
    data = to_fil([b"\x7f" * 40])
    assert len(FIL_HEADER) == 44
    assert data.startswith(FIL_HEADER)
    assert len(data) == len(FIL_HEADER) + PAGE_SIZE
    assert to_fil([b"\x7f" * 40], include_header=False) == data[len(FIL_HEADER) :]
    assert unpack_hgr_page(data)[0] == b"\x7f" * 40


def test_unpack_hgr_page_rejects_bad_size() -> None:
    with pytest.raises(ConversionError):
        unpack_hgr_page(bytes(100))


def test_parse_palette_text_crlf_tabs() -> None:
    palette = parse_palette_text(_palette_text())
    assert palette == [tuple(c) for c in APPLE2_PALETTE]
    assert parse_palette_text(_palette_text("\n") + "\n\n") == palette


def test_parse_palette_text_commas() -> None:
    text = "\n".join(f"{r}, {g}, {b}" for r, g, b, _a in APPLE2_PALETTE)
    assert parse_palette_text(text)[15] == (255, 255, 255, 255)


@pytest.mark.parametrize(
    "text",
    [
        "0\t0\t0\n" * 15,
        "0\t0\t0\n" * 17,
        "0\t0\n" * 16,
        "0\t0\tx\n" * 16,
        "0\t0\t256\n" * 16,
    ],
)
def test_parse_palette_text_rejects_malformed(text) -> None:
    with pytest.raises(ConversionError):
        parse_palette_text(text)


def test_load_palette(tmp_path) -> None:
    path = tmp_path / "apple2.pal"
    path.write_bytes(_palette_text().encode("utf-8"))
    assert load_palette(path)[5] == (20, 245, 60, 255)
    with pytest.raises(ConversionError):
        load_palette(tmp_path / "missing.pal")


def test_parse_color() -> None:
    assert parse_color("0,0,0") == (0, 0, 0)
    assert parse_color("10, 20, 30") == (10, 20, 30)
    assert parse_color("#FF8000") == (255, 128, 0)
    with pytest.raises(ConversionError):
        parse_color("1,2")
    with pytest.raises(ConversionError):
        parse_color("300,0,0")
    with pytest.raises(ConversionError):
        parse_color("#GG0000")


def test_format_palette_text() -> None:
    text = format_palette_text(APPLE2_PALETTE)
    assert text.startswith("0: (0,0,0), 1: (227,30,96)")
    assert text.endswith("15: (255,255,255)")
