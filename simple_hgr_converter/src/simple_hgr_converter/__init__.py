"""Simple PNG to Apple II HGR converter.

This module converts images into the pixels and bytes an Apple II can show in
high-resolution graphics mode, dithering with error diffusion and emulating
the way adjacent pixels interact on screen. It can be invoked through the CLI
(``simple-hgr-converter``) or imported to convert in-memory pixels, Pillow
images or PNG files.
"""

from .converter import (
    APPLE2_PALETTE,
    ConversionError,
    ConversionResult,
    ConvertOptions,
    LookupTable,
    Septet,
    build_lookup_table,
    color_distance,
    convert,
    convert_image_to_hgr,
    convert_line,
    convert_png_to_hgr,
    diffuse_error,
    fill,
    format_palette_text,
    load_palette,
    match_septet,
    render_preview,
    render_raw,
)
from .hgr import pack_hgr_page, to_fil, unpack_hgr_page

__all__ = [
    "APPLE2_PALETTE",
    "ConversionError",
    "ConversionResult",
    "ConvertOptions",
    "LookupTable",
    "Septet",
    "build_lookup_table",
    "color_distance",
    "convert",
    "convert_image_to_hgr",
    "convert_line",
    "convert_png_to_hgr",
    "diffuse_error",
    "fill",
    "format_palette_text",
    "load_palette",
    "match_septet",
    "pack_hgr_page",
    "render_preview",
    "render_raw",
    "to_fil",
    "unpack_hgr_page",
]
