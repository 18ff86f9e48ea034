#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cascii_buffer.py
================

Raster container and image codec seam for cascii (based on Pillow + numpy)

- PixelBuffer: row-major, channel-interleaved bytes plus shape metadata
- pixel_at: the one place that turns (x, y) into a byte offset
- decode / resample: Pillow-backed collaborator used by the converter
- Error hierarchy shared by every stage

Dependencies: Pillow, numpy
"""

from __future__ import annotations
import sys
from dataclasses import dataclass
from typing import NamedTuple, Tuple

import numpy as np

try:
    from PIL import Image, UnidentifiedImageError
except Exception as exc:  # pragma: no cover - 运行环境依赖
    print("This module requires Pillow. Install it with: pip install pillow", file=sys.stderr)
    raise


# ------------------------ Errors ------------------------
class CasciiError(Exception):
    """Base class for every failure that ends a conversion run."""


class DecodeFailed(CasciiError):
    """Bad path or unsupported image format."""


class InvalidDimensions(CasciiError, ValueError):
    """Non-positive or inconsistent width/height/channel values."""


class BufferSizeMismatch(InvalidDimensions):
    """Byte length does not match width * height * channels."""


class ResamplingFailed(CasciiError):
    """The resampling collaborator could not produce the target buffer."""


class EmptyInput(CasciiError, ValueError):
    """A stage received a buffer with zero pixels."""


class FileSinkUnavailable(CasciiError, OSError):
    """The text output file could not be opened."""


# ------------------------ Pixel Buffer ------------------------
VALID_CHANNELS = (1, 3, 4)

# Pillow mode for each channel count we hand out
_MODE_FOR_CHANNELS = {1: "L", 3: "RGB", 4: "RGBA"}


@dataclass(frozen=True)
class PixelBuffer:
    """Immutable raster: ``len(data) == width * height * channels``."""

    width: int
    height: int
    channels: int
    data: bytes

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise InvalidDimensions(f"negative size {self.width}x{self.height}")
        if self.channels not in VALID_CHANNELS:
            raise InvalidDimensions(f"unsupported channel count: {self.channels}")
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))
        expected = self.width * self.height * self.channels
        if len(self.data) != expected:
            raise BufferSizeMismatch(
                f"expected {expected} bytes for {self.width}x{self.height}x{self.channels}, got {len(self.data)}"
            )

    @classmethod
    def allocate(cls, width: int, height: int, channels: int) -> "PixelBuffer":
        """Zero-filled buffer sized for the given shape."""
        if width < 0 or height < 0:
            raise InvalidDimensions(f"negative size {width}x{height}")
        return cls(width, height, channels, bytes(width * height * channels))

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "PixelBuffer":
        """Build from a (H, W) or (H, W, C) uint8 array."""
        if arr.ndim == 2:
            arr = arr[:, :, np.newaxis]
        if arr.ndim != 3:
            raise InvalidDimensions(f"expected 2 or 3 dimensions, got {arr.ndim}")
        height, width, channels = arr.shape
        return cls(width, height, channels, np.ascontiguousarray(arr, dtype=np.uint8).tobytes())

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self.height, self.width, self.channels

    def as_array(self) -> np.ndarray:
        """Read-only (height, width, channels) uint8 view over ``data``."""
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.shape)


class PixelRef(NamedTuple):
    """Byte offset of a pixel and how many channel bytes follow it."""

    index: int
    channels: int

    def read(self, buffer: PixelBuffer) -> bytes:
        return buffer.data[self.index:self.index + self.channels]


def pixel_at(buffer: PixelBuffer, x: int, y: int) -> PixelRef:
    """Locate pixel (x, y) inside the interleaved byte sequence."""
    if not (0 <= x < buffer.width and 0 <= y < buffer.height):
        raise IndexError(f"pixel ({x}, {y}) outside {buffer.width}x{buffer.height}")
    return PixelRef((y * buffer.width + x) * buffer.channels, buffer.channels)


# ------------------------ Codec (Pillow) ------------------------
def _normalize_mode(img: Image.Image) -> Image.Image:
    """Collapse Pillow's many modes onto L / RGB / RGBA."""
    if img.mode in ("L", "RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    if img.mode in ("1", "I", "I;16", "I;16B", "I;16L", "F"):
        return img.convert("L")
    return img.convert("RGB")


def _to_image(buffer: PixelBuffer) -> Image.Image:
    return Image.frombytes(_MODE_FOR_CHANNELS[buffer.channels], (buffer.width, buffer.height), buffer.data)


def decode(path: str) -> PixelBuffer:
    """Read an image file into a PixelBuffer (first frame if animated)."""
    try:
        with Image.open(path) as img:
            img.seek(0)
            img = _normalize_mode(img)
            img.load()
            channels = len(img.getbands())
            return PixelBuffer(img.width, img.height, channels, img.tobytes())
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeFailed(f"cannot decode {path}: {exc}") from exc


def resample(buffer: PixelBuffer, width: int, height: int) -> PixelBuffer:
    """High-quality resize to ``width`` x ``height``; channel count is kept."""
    if buffer.pixel_count == 0:
        raise ResamplingFailed("cannot resample an empty buffer")
    try:
        out = _to_image(buffer).resize((width, height), Image.Resampling.LANCZOS)
    except (ValueError, MemoryError, OSError) as exc:
        raise ResamplingFailed(f"resize to {width}x{height} failed: {exc}") from exc
    return PixelBuffer(out.width, out.height, buffer.channels, out.tobytes())
