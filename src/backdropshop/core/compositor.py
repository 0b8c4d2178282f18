"""
Compositor / exporter.

`compose` turns a CompositionRequest into encoded bytes:

  PNG, no background      -> foreground passed through losslessly
  PNG/JPEG + background   -> background cover-fitted behind the foreground
  JPEG, no background     -> foreground flattened on white
  passport                -> centered square crop, 600x600 on white

Input rasters are never modified; every path draws into a freshly allocated canvas.
"""

from __future__ import annotations

import logging
import os

import cv2
import numpy as np

from backdropshop.core.geometry import center_square_window, cover_crop_window
from backdropshop.core.models import (
    DEFAULT_JPEG_QUALITY,
    PASSPORT_SIZE,
    CompositionRequest,
    EncodedOutput,
    OutputMode,
    RasterImage,
)
from backdropshop.core.raster import (
    WHITE,
    alpha_over,
    encode_jpeg,
    encode_png,
    flatten_on_white,
    resize_rgba,
)
from backdropshop.errors import CompositionFailure, ExportError, RenderTargetUnavailable

logger = logging.getLogger(__name__)


def _new_canvas(width: int, height: int, fill=(0, 0, 0, 0)) -> np.ndarray:
    """Allocate an RGBA canvas; failure to get one is RenderTargetUnavailable."""
    if width <= 0 or height <= 0:
        raise RenderTargetUnavailable(f"Could not create image canvas of size {width}x{height}.")
    try:
        return np.full((height, width, 4), fill, dtype=np.uint8)
    except (MemoryError, ValueError) as exc:
        raise RenderTargetUnavailable(f"Could not create image canvas of size {width}x{height}.") from exc


def suggest_file_name(subject_name: str, mode: OutputMode, with_background: bool) -> str:
    """
    bg-removed-<stem>.png|jpg, composite-<stem>.png|jpg or passport-<stem>.jpg.

    The stem is the base name up to its first dot ("a.b.jpg" -> "a").
    """
    stem = os.path.basename(subject_name or "").split(".")[0] or "image"
    if mode is OutputMode.PASSPORT_JPEG:
        prefix = "passport"
    elif with_background:
        prefix = "composite"
    else:
        prefix = "bg-removed"
    return f"{prefix}-{stem}.{mode.extension}"


def composite_over_background(foreground: RasterImage, background: RasterImage) -> np.ndarray:
    """
    Cover-fit `background` to the foreground's size and draw the foreground on top.

    The foreground's dimensions are authoritative: the result is always
    foreground.width x foreground.height.
    """
    canvas = _new_canvas(foreground.width, foreground.height)

    window = cover_crop_window(background.width, background.height, foreground.width, foreground.height)
    left, top, right, bottom = window.to_pixels(background.width, background.height)
    logger.debug(
        "composite: bg %dx%d crop=(%.1f, %.1f, %.1f, %.1f) -> canvas %dx%d",
        background.width,
        background.height,
        window.x,
        window.y,
        window.width,
        window.height,
        foreground.width,
        foreground.height,
    )

    region = background.pixels[top:bottom, left:right]
    canvas[:, :] = resize_rgba(region, (foreground.width, foreground.height))
    return alpha_over(canvas, foreground.pixels)


def flatten_to_opaque(foreground: RasterImage) -> np.ndarray:
    """Foreground blended over opaque white at native size."""
    canvas = _new_canvas(foreground.width, foreground.height, WHITE)
    return flatten_on_white(foreground.pixels, canvas=canvas)


def passport_crop(foreground: RasterImage, size: int = PASSPORT_SIZE) -> np.ndarray:
    """Centered square crop of the foreground, scaled to size x size on white."""
    canvas = _new_canvas(size, size, WHITE)

    window = center_square_window(foreground.width, foreground.height)
    left, top, right, bottom = window.to_pixels(foreground.width, foreground.height)
    logger.debug(
        "passport: crop=%d at (%.1f, %.1f) from %dx%d",
        int(window.width),
        window.x,
        window.y,
        foreground.width,
        foreground.height,
    )

    square = flatten_on_white(foreground.pixels[top:bottom, left:right])
    canvas[:, :] = resize_rgba(square, (size, size))
    return canvas


def _passthrough_png(foreground: RasterImage) -> bytes:
    if foreground.encoded is not None and (foreground.source_format or "").upper() == "PNG":
        return foreground.encoded
    return encode_png(foreground.pixels)


def compose(request: CompositionRequest, jpeg_quality: int = DEFAULT_JPEG_QUALITY) -> EncodedOutput:
    """
    Produce the exported bytes for `request`.

    Raises:
        RenderTargetUnavailable: when an output canvas cannot be allocated.
        CompositionFailure: when drawing or encoding fails.
    """
    mode = request.mode
    if not isinstance(mode, OutputMode):
        raise CompositionFailure(f"Unsupported output mode: {mode!r}")

    with_background = request.uses_background
    name = suggest_file_name(request.subject_name, mode, with_background)
    fg = request.foreground

    try:
        if mode is OutputMode.PASSPORT_JPEG:
            data = encode_jpeg(passport_crop(fg), quality=jpeg_quality)
        elif with_background:
            pixels = composite_over_background(fg, request.background)
            if mode is OutputMode.FLATTENED_JPEG:
                data = encode_jpeg(pixels, quality=jpeg_quality)
            else:
                data = encode_png(pixels)
        elif mode is OutputMode.FLATTENED_JPEG:
            data = encode_jpeg(flatten_to_opaque(fg), quality=jpeg_quality)
        else:
            data = _passthrough_png(fg)
    except ExportError:
        raise
    except (cv2.error, ValueError, MemoryError) as exc:
        raise CompositionFailure(f"Failed to compose {name}: {exc}") from exc

    logger.info("exported %s (%s, %d bytes)", name, mode.mime_type, len(data))
    return EncodedOutput(data=data, mime_type=mode.mime_type, suggested_file_name=name)
