"""Core conversion logic for the simple HGR converter."""

# Reference: Apple II high-resolution graphics (HGR)
# - 280x192 pixels, 40 bytes per scanline, 7 pixels per byte (bit 0 is leftmost).
# - Bit 7 of each byte is not a pixel: it delays the byte's pixels by half a
#   color clock and so selects the blue/orange pair instead of violet/green.
# - A lit pixel shows violet/blue in even columns and green/orange in odd columns.
# - Two adjacent lit pixels are white; an isolated unlit pixel between two
#   pixels of the same color is smeared over by the composite signal.
# - Because the column parity flips every 7 pixels, the same byte value renders
#   differently at even and odd byte offsets in the line.

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Tuple

from PIL import Image

Color = Tuple[float, float, float, float]

TARGET_WIDTH = 280
TARGET_HEIGHT = 192
SEPTET_WIDTH = 7
PALETTE_SIZE = 16
BLACK_INDEX = 0
WHITE_INDEX = 15

# Palette index reference:
#  0: Black
#  1: Magenta
#  2: Dark Blue
#  3: Dark Green
#  4: Brown
#  5: Green       (HGR, high bit clear, odd column)
#  6: Blue        (HGR, high bit set, even column)
#  7: Gray
#  8: Dark Gray
#  9: Orange      (HGR, high bit set, odd column)
# 10: Violet      (HGR, high bit clear, even column)
# 11: Pink
# 12: Light Blue
# 13: Yellow
# 14: Aqua
# 15: White
APPLE2_PALETTE: List[Color] = [
    (0, 0, 0, 255),
    (227, 30, 96, 255),
    (96, 78, 189, 255),
    (0, 163, 96, 255),
    (96, 114, 3, 255),
    (20, 245, 60, 255),
    (20, 207, 253, 255),
    (156, 156, 156, 255),
    (98, 98, 98, 255),
    (255, 106, 60, 255),
    (255, 68, 253, 255),
    (255, 160, 208, 255),
    (208, 195, 255, 255),
    (208, 221, 141, 255),
    (114, 255, 208, 255),
    (255, 255, 255, 255),
]

# (even column, odd column) palette indices for bit 7 clear / set.
_LOW_PAIR = (10, 5)
_HIGH_PAIR = (6, 9)

KR = 0.299
KB = 0.114
KG = 1 - KR - KB

_STRAIGHT_WEIGHT = 1 / (1 + 2 / math.sqrt(2))
_DIAGONAL_WEIGHT = (1 / math.sqrt(2)) / (1 + 2 / math.sqrt(2))
_ZERO: Color = (0.0, 0.0, 0.0, 0.0)


@dataclass
class ConvertOptions:
    """Options for fitting, palette selection and hardware emulation."""

    emulate_bleed: bool = True  # composite (NTSC) monitor; False for RGB monitors
    oversize_mode: str = "error"  # error, shrink, crop
    undersize_mode: str = "error"  # error, pad
    background_color: Tuple[int, int, int] = (0, 0, 0)
    palette_path: Path | None = None
    include_header: bool = True


class ConversionError(Exception):
    """Custom exception for conversion errors."""


@dataclass(frozen=True)
class Septet:
    """Seven pixels produced by one byte at one byte offset parity."""

    bits: int
    raw: Tuple[Color, ...]
    filled: Tuple[Color, ...]


@dataclass(frozen=True)
class LookupTable:
    """Every septet a byte can produce, grouped by line parity and previous bits.

    ``entries`` holds ``2 * 4 * 1024`` septets ordered by (odd, prev_bits,
    bits, next_bits). The table never changes once built, so one instance can
    be shared by any number of conversions using the same palette.
    """

    palette: Tuple[Color, ...]
    emulate_bleed: bool
    entries: Tuple[Septet, ...] = field(repr=False)

    SUBSET_SIZE = 1024

    def candidates(self, odd: bool, prev_bits: int) -> Tuple[Septet, ...]:
        offset = ((1 if odd else 0) * 4 + prev_bits) * self.SUBSET_SIZE
        return self.entries[offset : offset + self.SUBSET_SIZE]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass
class LineResult:
    colors: List[Color]
    bits: bytes


@dataclass
class ConversionResult:
    width: int
    height: int
    lines: List[List[Color]]
    line_bytes: List[bytes]


def _channel_ok(value: float) -> bool:
    return isinstance(value, (int, float)) and 0 <= value <= 255


def _to_rgba(color: Sequence[float], what: str) -> Color:
    if len(color) == 3:
        color = (*color, 255)
    if len(color) != 4:
        raise ConversionError(f"{what} must have three or four components: {color!r}")
    if not all(_channel_ok(c) for c in color):
        raise ConversionError(f"{what} components must be between 0 and 255: {color!r}")
    return tuple(color)  # type: ignore[return-value]


def validate_palette(palette: Sequence[Sequence[int]]) -> Tuple[Color, ...]:
    """Return ``palette`` as a tuple of RGBA tuples, or raise ConversionError."""

    if len(palette) != PALETTE_SIZE:
        raise ConversionError(
            f"Palette must have exactly {PALETTE_SIZE} entries, got {len(palette)}"
        )
    return tuple(_to_rgba(color, "Palette color") for color in palette)


def parse_color(text: str) -> Tuple[int, int, int]:
    text = text.strip()
    if text.startswith("#"):
        text = text[1:]
    if "," in text:
        parts = text.split(",")
    else:
        parts = [text[i : i + 2] for i in range(0, len(text), 2)]
    if len(parts) != 3:
        raise ConversionError("Color must have exactly three components")
    base = 10 if "," in text else 16
    values = []
    for part in parts:
        part = part.strip()
        try:
            values.append(int(part, base))
        except ValueError as exc:
            raise ConversionError(f"Invalid color component: {part}") from exc
    if any(not (0 <= v <= 255) for v in values):
        raise ConversionError("Color components must be between 0 and 255")
    return tuple(values)  # type: ignore[return-value]


def parse_palette_text(text: str) -> List[Color]:
    """Parse a palette file: one ``R G B`` line per entry, tab or comma separated."""

    palette: List[Color] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        parts = line.replace(",", " ").split()
        if len(parts) != 3:
            raise ConversionError(f"Palette line {lineno}: expected three components")
        try:
            r, g, b = (int(part) for part in parts)
        except ValueError as exc:
            raise ConversionError(f"Palette line {lineno}: invalid component") from exc
        palette.append(_to_rgba((r, g, b), f"Palette line {lineno}"))
    validate_palette(palette)
    return palette


def load_palette(path: str | Path) -> List[Color]:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConversionError(f"Palette file not found: {path}") from exc
    except OSError as exc:
        raise ConversionError(f"Failed to read palette: {path}") from exc
    return parse_palette_text(text)


def format_palette_text(palette: Sequence[Color]) -> str:
    entries = [f"{idx}: ({r},{g},{b})" for idx, (r, g, b, _a) in enumerate(palette)]
    return ", ".join(entries)


def color_distance(a: Color, b: Color) -> float:
    """Luma-weighted squared distance between two colors; alpha is ignored."""
    dr = (a[0] - b[0]) * KR
    dg = (a[1] - b[1]) * KG
    db = (a[2] - b[2]) * KB
    return dr * dr + dg * dg + db * db


def fill(colors: Sequence[Color], palette: Sequence[Color], emulate_bleed: bool = True) -> List[Color]:
    """Apply the HGR color interaction rules to a run of pixels.

    Two adjacent non-black pixels both become white. With ``emulate_bleed``
    a black pixel between two pixels of the same color takes that color, as
    on a composite monitor. Conditions are always read from ``colors``, never
    from the partially rewritten result.
    """

    black = palette[BLACK_INDEX]
    white = palette[WHITE_INDEX]
    result = list(colors)
    for i in range(1, len(result)):
        if emulate_bleed and i > 1 and colors[i - 1] == black and colors[i - 2] == colors[i]:
            result[i - 1] = result[i]
        elif colors[i - 1] != black and colors[i] != black:
            result[i - 1] = white
            result[i] = white
    return result


def render_raw(bits: int, odd: bool, palette: Sequence[Color]) -> List[Color]:
    """Render a byte into 7 pixels, ignoring any interaction between them.

    The result never contains white: white only comes from adjacent pixels.
    """

    pair = _HIGH_PAIR if bits & 0x80 else _LOW_PAIR
    black = palette[BLACK_INDEX]
    colors = []
    for _ in range(SEPTET_WIDTH):
        colors.append(palette[pair[1] if odd else pair[0]] if bits & 1 else black)
        bits >>= 1
        odd = not odd
    return colors


def build_lookup_table(palette: Sequence[Color], emulate_bleed: bool = True) -> LookupTable:
    """Build a table of all possible HGR septets.

    Pixels 0 and 6 of a byte interact with the last pixel of the previous
    byte and the first pixel of the next one, so every byte value is
    rendered against the two boundary bits (pixel and bit 7) on each side,
    for both even and odd byte offsets. That is 13 bits, 8192 entries.
    """

    palette = validate_palette(palette)
    entries: List[Septet] = []
    for odd in (False, True):
        for prev in range(4):
            left = render_raw(prev << 6, not odd, palette)[6]
            for bits in range(256):
                raw = tuple(render_raw(bits, odd, palette))
                for next_bits in range(4):
                    right = render_raw((next_bits & 1) | ((next_bits & 2) << 6), not odd, palette)[0]
                    extended = [left, *raw, right]
                    filled = tuple(fill(extended, palette, emulate_bleed)[1:8])
                    entries.append(Septet(bits=bits, raw=raw, filled=filled))
    return LookupTable(palette=palette, emulate_bleed=emulate_bleed, entries=tuple(entries))


def match_septet(pixels: Sequence[Color], candidates: Sequence[Septet]) -> Septet:
    """Return the candidate whose filled pixels are perceptually closest.

    Ties go to the earliest candidate.
    """

    # Filled pixels are palette colors, so distances repeat a lot.
    costs: List[dict] = [{} for _ in pixels]
    best = candidates[0]
    best_distance = math.inf
    for septet in candidates:
        total = 0.0
        for cost, pixel, color in zip(costs, pixels, septet.filled):
            d = cost.get(color)
            if d is None:
                d = cost[color] = color_distance(pixel, color)
            total += d
        if total < best_distance:
            best_distance = total
            best = septet
    return best


def convert_line(
    colors: Sequence[Color],
    table: LookupTable,
    palette: Sequence[Color] | None = None,
    emulate_bleed: bool | None = None,
) -> LineResult:
    """Match a line septet by septet and return its colors and bytes.

    The palette and bleed setting come from ``table``; when given,
    ``palette`` and ``emulate_bleed`` must agree with it.
    """

    if len(colors) % SEPTET_WIDTH:
        raise ConversionError(f"Line width must be a multiple of 7, got {len(colors)}")
    if palette is not None and validate_palette(palette) != table.palette:
        raise ConversionError("Lookup table was built for a different palette")
    if emulate_bleed is not None and emulate_bleed != table.emulate_bleed:
        raise ConversionError("Lookup table was built for a different bleed setting")

    line: List[Color] = []
    encoded = bytearray()
    prev_byte = 0
    odd = False
    for start in range(0, len(colors), SEPTET_WIDTH):
        septet = match_septet(colors[start : start + SEPTET_WIDTH], table.candidates(odd, prev_byte >> 6))
        line.extend(septet.raw)
        encoded.append(septet.bits)
        prev_byte = septet.bits
        odd = not odd

    # Group edges were matched against guessed neighbours; settle them now.
    return LineResult(colors=fill(line, table.palette, table.emulate_bleed), bits=bytes(encoded))


def add_lines(line_a: Sequence[Color], line_b: Sequence[Color]) -> List[Color]:
    return [tuple(x + y for x, y in zip(a, b)) for a, b in zip(line_a, line_b)]


def subtract_lines(line_a: Sequence[Color], line_b: Sequence[Color]) -> List[Color]:
    return [tuple(x - y for x, y in zip(a, b)) for a, b in zip(line_a, line_b)]


def diffuse_error(errors: Sequence[Color]) -> List[Color]:
    """Spread each pixel's error over the three pixels below it.

    The straight-down neighbour gets ``1/sqrt(2)`` times more than each
    diagonal one; the weights add up to 1.
    """

    extended = [_ZERO, *errors, _ZERO]
    return [
        tuple(
            left * _DIAGONAL_WEIGHT + center * _STRAIGHT_WEIGHT + right * _DIAGONAL_WEIGHT
            for left, center, right in zip(extended[i], extended[i + 1], extended[i + 2])
        )
        for i in range(len(errors))
    ]


def _validate_input(pixels: Sequence[Sequence[float]], width: int, height: int) -> None:
    if width < 0 or height < 0:
        raise ConversionError(f"Invalid image size: {width}x{height}")
    if width % SEPTET_WIDTH or (width == 0 and height > 0):
        raise ConversionError(f"Image width must be a multiple of 7, got {width}")
    if len(pixels) != width * height:
        raise ConversionError(
            f"Expected {width * height} pixels for {width}x{height}, got {len(pixels)}"
        )
    for index, color in enumerate(pixels):
        if len(color) != 4 or not all(_channel_ok(c) for c in color):
            raise ConversionError(
                f"Pixel {index % width},{index // width} is not an RGBA color in 0-255: {color!r}"
            )


def convert(
    pixels: Sequence[Color],
    width: int,
    height: int,
    palette: Sequence[Color],
    emulate_bleed: bool = True,
    table: LookupTable | None = None,
) -> ConversionResult:
    """Dither ``pixels`` (row-major RGBA) into HGR colors and bytes.

    Quantization error of each line is diffused into the next one only, so
    lines are processed strictly top to bottom. A prebuilt ``table`` for the
    same palette may be passed to skip rebuilding it.
    """

    palette = validate_palette(palette)
    _validate_input(pixels, width, height)
    if table is None:
        table = build_lookup_table(palette, emulate_bleed)
    elif table.palette != palette or table.emulate_bleed != emulate_bleed:
        raise ConversionError("Lookup table was built for a different palette or bleed setting")

    lines: List[List[Color]] = []
    line_bytes: List[bytes] = []
    error: List[Color] = [_ZERO] * width
    for y in range(height):
        offset = y * width
        adjusted = add_lines(pixels[offset : offset + width], error)
        converted = convert_line(adjusted, table)
        lines.append(converted.colors)
        line_bytes.append(converted.bits)
        error = diffuse_error(subtract_lines(adjusted, converted.colors))

    return ConversionResult(width=width, height=height, lines=lines, line_bytes=line_bytes)


def resize_image(image: Image.Image, options: ConvertOptions) -> Image.Image:
    width, height = image.size
    target = (TARGET_WIDTH, TARGET_HEIGHT)

    if width == TARGET_WIDTH and height == TARGET_HEIGHT:
        return image

    if width > TARGET_WIDTH or height > TARGET_HEIGHT:
        if options.oversize_mode == "error":
            raise ConversionError("Input exceeds 280x192. Use --oversize to allow resizing or cropping.")
        if options.oversize_mode == "shrink":
            ratio = min(TARGET_WIDTH / width, TARGET_HEIGHT / height)
            new_size = (max(1, int(width * ratio)), max(1, int(height * ratio)))
            warnings.warn(
                f"Image shrunk from {width}x{height} to {new_size[0]}x{new_size[1]}",
                RuntimeWarning,
                stacklevel=2,
            )
            image = image.resize(new_size, Image.LANCZOS)
            width, height = image.size
        elif options.oversize_mode == "crop":
            left = max(0, (width - TARGET_WIDTH) // 2)
            top = max(0, (height - TARGET_HEIGHT) // 2)
            image = image.crop((left, top, left + min(width, TARGET_WIDTH), top + min(height, TARGET_HEIGHT)))
            warnings.warn(
                f"Image cropped from {width}x{height} to {image.width}x{image.height}",
                RuntimeWarning,
                stacklevel=2,
            )
            width, height = image.size
        else:
            raise ConversionError(f"Unknown oversize mode: {options.oversize_mode}")

    if width < TARGET_WIDTH or height < TARGET_HEIGHT:
        if options.undersize_mode == "error":
            raise ConversionError("Input is smaller than 280x192. Use --undersize pad and set --background.")
        if options.undersize_mode == "pad":
            canvas = Image.new("RGBA", target, (*options.background_color, 255))
            offset = ((TARGET_WIDTH - width) // 2, (TARGET_HEIGHT - height) // 2)
            canvas.paste(image, offset)
            image = canvas
        else:
            raise ConversionError(f"Unknown undersize mode: {options.undersize_mode}")

    if image.size != target:
        raise ConversionError("Image could not be resized to exactly 280x192.")

    return image


def image_to_colors(image: Image.Image) -> List[Color]:
    image = image.convert("RGBA")
    # Pillow 12.1 added get_flattened_data() and deprecated getdata().
    if hasattr(image, "get_flattened_data"):
        return list(image.get_flattened_data())
    return list(image.getdata())


def resolve_palette(options: ConvertOptions) -> Tuple[Color, ...]:
    if options.palette_path is None:
        return validate_palette(APPLE2_PALETTE)
    return validate_palette(load_palette(options.palette_path))


def convert_image_to_hgr(
    image: Image.Image, options: ConvertOptions | None = None
) -> ConversionResult:
    options = options or ConvertOptions()
    palette = resolve_palette(options)
    image = resize_image(image.convert("RGBA"), options)
    return convert(
        image_to_colors(image),
        image.width,
        image.height,
        palette,
        emulate_bleed=options.emulate_bleed,
    )


def render_preview(result: ConversionResult) -> Image.Image:
    """Render converted lines as an RGBA image, as an HGR screen would show them."""

    preview = Image.new("RGBA", (result.width, result.height))
    preview.putdata([tuple(int(c) for c in color) for line in result.lines for color in line])
    return preview


def convert_png_to_hgr(path: str | Path, options: ConvertOptions | None = None) -> ConversionResult:
    path = Path(path)
    try:
        with Image.open(path) as img:
            return convert_image_to_hgr(img, options)
    except FileNotFoundError as exc:
        raise ConversionError(f"Input file not found: {path}") from exc
    except OSError as exc:
        raise ConversionError(f"Failed to read PNG: {path}") from exc

