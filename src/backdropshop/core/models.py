from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np

PASSPORT_SIZE = 600
DEFAULT_JPEG_QUALITY = 95


class OutputMode(Enum):
    """Export format chosen by the user."""

    TRANSPARENT_PNG = "png"
    FLATTENED_JPEG = "jpeg"
    PASSPORT_JPEG = "passport"

    @property
    def extension(self) -> str:
        return "png" if self is OutputMode.TRANSPARENT_PNG else "jpg"

    @property
    def mime_type(self) -> str:
        return "image/png" if self is OutputMode.TRANSPARENT_PNG else "image/jpeg"

    @classmethod
    def available(cls, has_background: bool) -> tuple["OutputMode", ...]:
        """Modes offered to the user; passport output ignores backgrounds so it is hidden then."""
        if has_background:
            return (cls.TRANSPARENT_PNG, cls.FLATTENED_JPEG)
        return (cls.TRANSPARENT_PNG, cls.FLATTENED_JPEG, cls.PASSPORT_JPEG)


@dataclass(frozen=True, eq=False)
class RasterImage:
    """
    A decoded bitmap.

    pixels:
        uint8 array of shape (height, width, 4), RGBA with straight
        (non-premultiplied) alpha. Stored read-only.
    source_format:
        Format tag reported by the decoder (e.g. "PNG", "JPEG"), if any.
    encoded:
        The bytes the raster was decoded from, kept so lossless pass-through
        export can hand them back untouched.
    """
    pixels: np.ndarray
    source_format: Optional[str] = None
    encoded: Optional[bytes] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        arr = np.asarray(self.pixels)
        if arr.dtype != np.uint8 or arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"RasterImage needs a (H, W, 4) uint8 array, got {arr.dtype} {arr.shape}")
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ValueError("RasterImage must have a non-zero size")
        arr = arr.copy()
        arr.flags.writeable = False
        object.__setattr__(self, "pixels", arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class CompositionRequest:
    """
    Everything the exporter needs for one export.

    `background` is ignored when `mode` is PASSPORT_JPEG.
    `subject_name` is the uploaded subject's file name, used to name the output.
    """
    foreground: RasterImage
    background: Optional[RasterImage] = None
    mode: OutputMode = OutputMode.TRANSPARENT_PNG
    subject_name: str = "image"

    @property
    def uses_background(self) -> bool:
        return self.background is not None and self.mode is not OutputMode.PASSPORT_JPEG


@dataclass(frozen=True)
class EncodedOutput:
    data: bytes = field(repr=False)
    mime_type: str
    suggested_file_name: str


@dataclass(frozen=True)
class ImageUpload:
    """A user-supplied image file before decoding."""
    file_name: str
    mime_type: str
    data: bytes = field(repr=False)
