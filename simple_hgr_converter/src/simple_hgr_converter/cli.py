"""Command line interface for the simple HGR converter."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, List

from .converter import (
    APPLE2_PALETTE,
    ConvertOptions,
    ConversionError,
    convert_png_to_hgr,
    format_palette_text,
    parse_color,
    render_preview,
)
from .hgr import to_fil


def iter_pngs(paths: Iterable[str]) -> List[Path]:
    results: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_file():
            if path.suffix.lower() != ".png":
                raise ConversionError(f"Unsupported file type (expected .png): {path}")
            results.append(path)
        elif path.is_dir():
            for entry in sorted(path.iterdir()):
                if entry.is_file() and entry.suffix.lower() == ".png":
                    results.append(entry)
        else:
            raise ConversionError(f"Input path does not exist: {path}")
    if not results:
        raise ConversionError("No PNG files were found in the provided inputs.")
    return results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Convert PNG files into Apple II hi-res pictures (.fil) with PNG previews.\n"
            "Images are dithered line by line against every byte the HGR mode can show, "
            "taking into account how neighbouring pixels turn white or bleed together.\n"
            f"Default palette: {format_palette_text(APPLE2_PALETTE)}"
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        help="PNG files or folders containing PNGs (non-recursive)",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        required=True,
        help="Destination directory for .fil/.png files",
    )
    parser.add_argument("--prefix", default="", help="Optional prefix for output filenames")
    parser.add_argument("--suffix", default="", help="Optional suffix for output filenames")
    parser.add_argument(
        "--oversize",
        choices=["error", "shrink", "crop"],
        default="error",
        help="How to handle images larger than 280x192",
    )
    parser.add_argument(
        "--undersize",
        choices=["error", "pad"],
        default="error",
        help="How to handle images smaller than 280x192",
    )
    parser.add_argument(
        "--background",
        default="0,0,0",
        help="Background color for padding (e.g., 0,0,0 or #000000)",
    )
    parser.add_argument(
        "--palette",
        help="Palette file with 16 'R<TAB>G<TAB>B' lines (index 0 black, 15 white)",
    )
    parser.add_argument(
        "--no-bleed",
        action="store_true",
        help=(
            "Do not smear black pixels between two pixels of the same color. "
            "Use for RGB monitors; composite TVs show the bleed."
        ),
    )
    parser.add_argument(
        "--no-header",
        action="store_true",
        help="Write the raw 8 KiB HGR page without the FIL header",
    )
    parser.add_argument(
        "--no-preview",
        action="store_true",
        help="Do not write the PNG preview next to the .fil file",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Overwrite existing files without prompting",
    )
    return parser


def ensure_unique_names(paths: List[Path], prefix: str, suffix: str) -> List[str]:
    names: List[str] = []
    seen = set()
    for path in paths:
        name = f"{prefix}{path.stem}{suffix}"
        if name in seen:
            raise ConversionError(f"Duplicate output name would occur: {name}")
        seen.add(name)
        names.append(name)
    return names


def write_outputs(
    inputs: List[Path],
    names: List[str],
    options: ConvertOptions,
    output_dir: Path,
    force: bool,
    preview: bool,
) -> None:
    extensions = [".fil", ".png"] if preview else [".fil"]
    conflicts = []
    for name in names:
        for extension in extensions:
            target = output_dir / f"{name}{extension}"
            if target.exists() and not force:
                conflicts.append(str(target))
    if conflicts:
        raise ConversionError(
            "Output files already exist (use --force to overwrite):\n" + "\n".join(conflicts)
        )

    output_dir.mkdir(parents=True, exist_ok=True)

    for src, name in zip(inputs, names):
        result = convert_png_to_hgr(src, options)
        target = output_dir / f"{name}.fil"
        target.write_bytes(to_fil(result.line_bytes, include_header=options.include_header))
        print(f"wrote {target}")
        if preview:
            target = output_dir / f"{name}.png"
            render_preview(result).save(target)
            print(f"wrote {target}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        options = ConvertOptions()
        options.emulate_bleed = not args.no_bleed
        options.oversize_mode = args.oversize
        options.undersize_mode = args.undersize
        options.background_color = parse_color(args.background)
        options.palette_path = Path(args.palette) if args.palette else None
        options.include_header = not args.no_header

        inputs = iter_pngs(args.inputs)
        output_dir = Path(args.output_dir)
        names = ensure_unique_names(inputs, args.prefix, args.suffix)
        write_outputs(inputs, names, options, output_dir, args.force, not args.no_preview)
        return 0
    except ConversionError as exc:
        print(exc, file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
