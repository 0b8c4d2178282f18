"""
Crop-window geometry for the exporter.

All windows are expressed in source-image pixel coordinates as floats, the
same way a canvas `drawImage(img, sx, sy, sw, sh, ...)` call takes them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class CropWindow:
    x: float
    y: float
    width: float
    height: float

    def scale_to(self, dst_w: int, dst_h: int) -> Tuple[float, float]:
        """(sx, sy) scale factors that stretch this window onto a dst_w x dst_h target."""
        return dst_w / self.width, dst_h / self.height

    def to_pixels(self, src_w: int, src_h: int) -> Tuple[int, int, int, int]:
        """
        Snap to whole pixels inside the source: (left, top, right, bottom).

        The size is rounded once and the far edge derived from it, so a
        square window stays square.
        """
        w = min(src_w, max(1, int(round(self.width))))
        h = min(src_h, max(1, int(round(self.height))))
        left = min(max(0, int(round(self.x))), src_w - w)
        top = min(max(0, int(round(self.y))), src_h - h)
        return left, top, left + w, top + h


def cover_crop_window(src_w: int, src_h: int, dst_w: int, dst_h: int) -> CropWindow:
    """
    Largest centered window of the source with the destination's aspect ratio.

    Stretching the window onto the destination covers it completely (no
    letterboxing) with equal scale on both axes.
    """
    if min(src_w, src_h, dst_w, dst_h) <= 0:
        raise ValueError("Image dimensions must be > 0")

    src_aspect = src_w / src_h
    dst_aspect = dst_w / dst_h

    if src_aspect > dst_aspect:
        # Source relatively wider: trim left/right.
        width = src_h * dst_aspect
        return CropWindow(x=(src_w - width) / 2, y=0.0, width=width, height=float(src_h))

    height = src_w / dst_aspect
    return CropWindow(x=0.0, y=(src_h - height) / 2, width=float(src_w), height=height)


def center_square_window(width: int, height: int) -> CropWindow:
    """Centered square of side min(width, height)."""
    if width <= 0 or height <= 0:
        raise ValueError("Image dimensions must be > 0")
    crop = min(width, height)
    return CropWindow(x=(width - crop) / 2, y=(height - crop) / 2, width=float(crop), height=float(crop))
