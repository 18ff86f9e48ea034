#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cascii.py
=========

图片转 ASCII 工具（灰度 + 字符梯度），基于 Pillow / numpy

- Aspect-ratio aware resize: integer ratio, tall images keep the requested height
- Perceptual grayscale (0.21 R + 0.72 G + 0.07 B), rounded or truncated
- Brightness quantization onto a dark-to-light glyph ramp, clamped at 255
- Output to terminal and optionally to a plain text file

Pipeline: decode -> resize -> to_grayscale -> render

依赖：Pillow, numpy
"""

from __future__ import annotations
import argparse
import logging
import math
import sys
from dataclasses import dataclass, asdict
from typing import Callable, Iterator, List, Optional, TextIO, Tuple

import numpy as np

from cascii_buffer import (
    CasciiError,
    EmptyInput,
    FileSinkUnavailable,
    InvalidDimensions,
    PixelBuffer,
    ResamplingFailed,
    decode,
    pixel_at,
    resample,
)

VERSION = "0.1"

LOG = logging.getLogger("cascii")


# ------------------------ Ramps ------------------------
# Dark -> light: ink grows along the ramp and the trailing space is the
# lightest glyph. The legacy ramp is kept byte for byte, including its
# second "o".
DEFAULT_RAMP = "^\",:;Il!i~+_-?][}{1)(|\\/tfjrxnuvczXYUJCLQ0oZmwqpdbkhao*#MW&8%B@S "

RAMPS = {
    "legacy": DEFAULT_RAMP,
    "standard": ".'`^\",:;Il!i><~+_-?][}{1)(|\\/tfjrxnuvczXYUJCLQ0OZmwqpdbkhao*#MW&8%B@$ ",
    "sparse": ".:-=+*#%@ ",
    "dense": ".'`^\",:;Il!i><~+_-?][}{1)(|\\/tfjrxnuvczsXYUJCLQ0OZmwqpdbkhaoyegKPHDNAGERSFTV*#MW&8%B@$ ",
    "binary": "# ",
}


def resolve_ramp(name_or_literal: str) -> str:
    """Resolve a preset name to its ramp; otherwise validate a literal ramp."""
    if name_or_literal in RAMPS:
        return RAMPS[name_or_literal]
    if not name_or_literal:
        raise ValueError("Ramp must contain at least one glyph.")
    if not all(" " <= ch <= "~" for ch in name_or_literal):
        raise ValueError("Ramp glyphs must be printable ASCII.")
    if not name_or_literal.strip():
        raise ValueError("Custom ramp must contain at least one non-space character.")
    return name_or_literal


# ------------------------ Config ------------------------
# Perceptual weights: green dominates, blue least
RED_WEIGHT = 0.21
GREEN_WEIGHT = 0.72
BLUE_WEIGHT = 0.07

ROUNDING_MODES = ("round", "truncate")


@dataclass
class AsciiImageConfig:
    """Configuration for image-to-ASCII conversion."""

    width: Optional[int] = None
    height: Optional[int] = None
    ramp: str = "legacy"
    write_file: bool = False
    output_path: str = "ascii.txt"
    rounding: str = "round"  # round | truncate

    def to_dict(self) -> dict:
        """Return config as dict."""
        return asdict(self)


# ------------------------ Resizer ------------------------
def compute_target_size(width: int, height: int, target_width: int,
                        requested_height: Optional[int] = None) -> Tuple[int, int]:
    """
    Output size for a ``width`` x ``height`` source.

    The aspect ratio is the integer quotient ``width // height``; images taller
    than wide give 0 and are treated as 1. With a ratio of 1 the requested
    height is used as is, otherwise it is divided by the ratio. Omitting
    ``requested_height`` uses ``target_width`` in its place.
    """
    if height <= 0:
        raise InvalidDimensions(f"source height must be positive, got {height}")
    if target_width <= 0:
        raise InvalidDimensions(f"target width must be positive, got {target_width}")
    if requested_height is None:
        requested_height = target_width

    aspect_ratio = width // height
    if aspect_ratio == 0:
        aspect_ratio = 1

    target_height = requested_height if aspect_ratio == 1 else requested_height // aspect_ratio
    if target_height <= 0:
        raise InvalidDimensions(
            f"computed target height {target_height} from requested {requested_height} (ratio {aspect_ratio})"
        )
    return target_width, target_height


def resize(original: PixelBuffer, target_width: int, requested_height: Optional[int] = None,
           resampler: Callable[[PixelBuffer, int, int], PixelBuffer] = resample) -> PixelBuffer:
    """Resize keeping the integer aspect ratio; pixels come from ``resampler``."""
    tw, th = compute_target_size(original.width, original.height, target_width, requested_height)
    expected = (th, tw, original.channels)
    LOG.debug("resize %dx%d -> %dx%d (%d bytes)", original.width, original.height, tw, th,
              tw * th * original.channels)

    out = resampler(original, tw, th)
    if out.shape != expected:
        raise ResamplingFailed(
            f"resampler returned {out.width}x{out.height}x{out.channels}, expected {tw}x{th}x{original.channels}"
        )
    return out


# ------------------------ Grayscale ------------------------
def to_grayscale(buffer: PixelBuffer, rounding: str = "round") -> PixelBuffer:
    """
    Single-channel luminance buffer of the same size.

    ``rounding="round"`` rounds to nearest (numpy ``rint``, ties to even);
    ``"truncate"`` drops the fraction for bit-exact legacy output. Alpha is
    discarded. A 1-channel input is already luminance and is copied.
    """
    if rounding not in ROUNDING_MODES:
        raise ValueError(f"rounding must be one of: {', '.join(ROUNDING_MODES)}")
    if buffer.pixel_count == 0:
        raise EmptyInput("cannot convert an image with zero pixels")
    if buffer.channels == 1:
        return PixelBuffer(buffer.width, buffer.height, 1, buffer.data)
    if buffer.channels not in (3, 4):
        raise InvalidDimensions(f"expected 3 or 4 channels, got {buffer.channels}")

    rgb = buffer.as_array()[:, :, :3].astype(np.float64)
    lum = rgb[:, :, 0] * RED_WEIGHT + rgb[:, :, 1] * GREEN_WEIGHT + rgb[:, :, 2] * BLUE_WEIGHT
    lum = np.rint(lum) if rounding == "round" else np.floor(lum)
    gray = np.clip(lum, 0, 255).astype(np.uint8)
    return PixelBuffer.from_array(gray)


# ------------------------ Glyph mapping ------------------------
def glyph_index(luminance: int, ramp_length: int) -> int:
    """Ramp index for a luminance in [0, 255], always inside the ramp."""
    if ramp_length < 1:
        raise ValueError("Ramp must contain at least one glyph.")
    idx = math.floor(ramp_length * (luminance / 255.0))
    # luminance 255 lands one past the end
    return max(0, min(ramp_length - 1, idx))


def map_to_glyph(luminance: int, ramp: str) -> str:
    return ramp[glyph_index(luminance, len(ramp))]


# ------------------------ Renderer ------------------------
def _require_gray(gray: PixelBuffer) -> None:
    if gray.channels != 1:
        raise InvalidDimensions(f"renderer expects a 1-channel buffer, got {gray.channels}")


def render_lines(gray: PixelBuffer, ramp: str) -> Iterator[str]:
    """Yield one string of glyphs per row, top to bottom."""
    _require_gray(gray)
    for y in range(gray.height):
        row: List[str] = []
        for x in range(gray.width):
            ref = pixel_at(gray, x, y)
            row.append(map_to_glyph(gray.data[ref.index], ramp))
        yield "".join(row)


def render_text(gray: PixelBuffer, ramp: str) -> str:
    """Whole grid as text, each row terminated by a newline."""
    return "".join(line + "\n" for line in render_lines(gray, ramp))


def render(gray: PixelBuffer, ramp: str, stdout: Optional[TextIO] = None,
           file_path: Optional[str] = None) -> None:
    """Write the glyph grid to ``stdout`` and, if given, to ``file_path``."""
    out = stdout if stdout is not None else sys.stdout
    _require_gray(gray)
    lines = render_lines(gray, ramp)

    sink = None
    if file_path:
        try:
            sink = open(file_path, "w", encoding="utf-8", newline="")
        except OSError as exc:
            raise FileSinkUnavailable(f"cannot open {file_path}: {exc}") from exc

    try:
        for line in lines:
            out.write(line + "\n")
            if sink is not None:
                sink.write(line + "\n")
    finally:
        if sink is not None:
            sink.close()

    if file_path:
        LOG.info("Saved: %s", file_path)


# ------------------------ Core Converter ------------------------
class AsciiImageConverter:
    """Run decode -> resize -> grayscale -> render with one configuration."""

    def __init__(self, config: AsciiImageConfig,
                 resampler: Callable[[PixelBuffer, int, int], PixelBuffer] = resample):
        self.cfg = config
        self.ramp = resolve_ramp(config.ramp)
        self.resampler = resampler

    # ---- loading ----
    def load_image(self, path: str) -> PixelBuffer:
        buffer = decode(path)
        LOG.debug("decoded %s: %dx%d, %d channels", path, buffer.width, buffer.height, buffer.channels)
        return buffer

    def describe(self, path: str) -> str:
        """Metadata line: ``<path>: w:<W>, h:<H>, c:<C>``."""
        buffer = self.load_image(path)
        return f"{path}: w:{buffer.width}, h:{buffer.height}, c:{buffer.channels}"

    # ---- conversion ----
    def convert(self, buffer: PixelBuffer) -> PixelBuffer:
        """Resize and convert to grayscale; returns the 1-channel buffer."""
        if self.cfg.width is None:
            raise InvalidDimensions("target width is required")
        resized = resize(buffer, self.cfg.width, self.cfg.height, resampler=self.resampler)
        gray = to_grayscale(resized, rounding=self.cfg.rounding)
        LOG.debug("grayscale %dx%d (%s)", gray.width, gray.height, self.cfg.rounding)
        return gray

    def to_text(self, path: str) -> str:
        return render_text(self.convert(self.load_image(path)), self.ramp)

    def run(self, path: str, stdout: Optional[TextIO] = None) -> PixelBuffer:
        gray = self.convert(self.load_image(path))
        render(gray, self.ramp, stdout=stdout,
               file_path=self.cfg.output_path if self.cfg.write_file else None)
        return gray


# ------------------------ Logging ------------------------
def setup_logging(debug: bool, log_path: Optional[str] = None) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    LOG.setLevel(level)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level)
    sh.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    handlers: List[logging.Handler] = [sh]

    if log_path:
        try:
            fh = logging.FileHandler(log_path, encoding="utf-8")
        except OSError as exc:
            raise FileSinkUnavailable(f"cannot open log file {log_path}: {exc}") from exc
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
        handlers.append(fh)
        LOG.setLevel(logging.DEBUG)

    for old in LOG.handlers:
        old.close()
    LOG.handlers[:] = handlers
    LOG.propagate = False


# ------------------------ CLI ------------------------
class UsageError(Exception):
    """Bad command line; the caller prints the usage text."""


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def _ramp_arg(value: str) -> str:
    """Validate a ramp argument; the name or literal itself is kept."""
    try:
        resolve_ramp(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="cascii",
        description="Convert an image to ASCII art",
        allow_abbrev=False,
    )
    parser.add_argument("image", nargs="?", help="Input image path")
    parser.add_argument("width", nargs="?", type=int, help="Target width (characters)")
    parser.add_argument("height", nargs="?", type=int, help="Requested height (characters)")
    parser.add_argument("-v", "--version", action="store_true", help="Print version and exit")
    parser.add_argument("--imdata", action="store_true", help="Print image data {width, height, channels}")
    parser.add_argument("--file", "--f", dest="write_file", action="store_true",
                        help="Also write the ASCII art to a text file")
    parser.add_argument("-o", "--output", help="Text file path (implies --file; default ascii.txt)")
    parser.add_argument("--ramp", type=_ramp_arg, default="legacy",
                        help=f"Ramp name or custom dark-to-light string. Presets: {', '.join(RAMPS.keys())}")
    parser.add_argument("--truncate", action="store_true", help="Truncate luminance instead of rounding")
    parser.add_argument("--debug", action="store_true", help="Debug logging to stderr")
    parser.add_argument("--log-file", help="Also write logs to this file")
    return parser


def parse_args(argv: List[str]) -> argparse.Namespace:
    return _build_arg_parser().parse_args(argv)


def usage() -> str:
    return _build_arg_parser().format_help()


def main(argv: List[str]) -> int:
    try:
        args = parse_args(argv)
    except UsageError as exc:
        print(f"cascii: {exc}", file=sys.stderr)
        print(usage())
        return 0

    try:
        setup_logging(args.debug, args.log_file)
    except CasciiError as exc:
        print(f"cascii: {exc}", file=sys.stderr)
        print(usage(), file=sys.stderr)
        return 1

    if args.version:
        print(f"cascii version: {VERSION}")
        return 0
    if args.image is None:
        print(usage())
        return 0

    cfg = AsciiImageConfig(
        width=args.width,
        height=args.height,
        ramp=args.ramp,
        write_file=args.write_file or args.output is not None,
        output_path=args.output or "ascii.txt",
        rounding="truncate" if args.truncate else "round",
    )
    LOG.debug("config: %s", cfg.to_dict())
    converter = AsciiImageConverter(cfg)

    try:
        if args.imdata:
            print(converter.describe(args.image))
            return 0
        if args.width is None or args.height is None:
            print(usage())
            return 0
        converter.run(args.image)
    except CasciiError as exc:
        LOG.debug("conversion failed", exc_info=True)
        print(f"Conversion failed: {exc}", file=sys.stderr)
        print(usage(), file=sys.stderr)
        return 1
    return 0


def cli() -> None:
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
