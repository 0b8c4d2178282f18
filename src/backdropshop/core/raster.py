"""
Raster decode/encode and pixel-level helpers.

Everything here works on RGBA uint8 arrays with straight alpha. Pillow handles
the codecs; OpenCV handles resampling.
"""

from __future__ import annotations

import logging
from io import BytesIO
from typing import Optional, Tuple

import cv2
import numpy as np
from PIL import Image, ImageOps

from backdropshop.core.models import DEFAULT_JPEG_QUALITY, RasterImage
from backdropshop.errors import CompositionFailure, DecodeFailure

logger = logging.getLogger(__name__)

_EXIF_ORIENTATION = 0x0112
WHITE = (255, 255, 255, 255)


def decode_raster(data: bytes, label: str = "image") -> RasterImage:
    """
    Decode encoded bytes into an RGBA RasterImage.

    EXIF orientation is applied. The original bytes are kept on the raster
    only when no re-orientation was needed, so they still match the pixels.
    """
    if not data:
        raise DecodeFailure(f"Failed to load {label}: no data.")
    try:
        img = Image.open(BytesIO(data))
        source_format = img.format
        orientation = img.getexif().get(_EXIF_ORIENTATION, 1)
        img = ImageOps.exif_transpose(img)
        rgba = np.array(img.convert("RGBA"), dtype=np.uint8)
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"Failed to load {label}: {exc}") from exc

    logger.debug("decoded %s: format=%s size=%dx%d", label, source_format, rgba.shape[1], rgba.shape[0])
    return RasterImage(
        pixels=rgba,
        source_format=source_format,
        encoded=data if orientation == 1 else None,
    )


def encode_png(pixels: np.ndarray) -> bytes:
    try:
        buf = BytesIO()
        Image.fromarray(np.ascontiguousarray(pixels), "RGBA").save(buf, format="PNG")
    except (OSError, ValueError) as exc:
        raise CompositionFailure(f"PNG encoding failed: {exc}") from exc
    return buf.getvalue()


def encode_jpeg(pixels: np.ndarray, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """JPEG-encode an RGBA array; any remaining transparency is flattened on white first."""
    if not bool((pixels[..., 3] == 255).all()):
        pixels = flatten_on_white(pixels)
    rgb = np.ascontiguousarray(pixels[..., :3])
    try:
        buf = BytesIO()
        Image.fromarray(rgb, "RGB").save(buf, format="JPEG", quality=quality, optimize=True)
    except (OSError, ValueError) as exc:
        raise CompositionFailure(f"JPEG encoding failed: {exc}") from exc
    return buf.getvalue()


def _to_unit(pixels: np.ndarray) -> np.ndarray:
    return pixels.astype(np.float32) / 255.0


def _to_u8(unit: np.ndarray) -> np.ndarray:
    return (np.clip(unit, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def _unpremultiply(premul: np.ndarray) -> np.ndarray:
    alpha = premul[..., 3:4]
    rgb = np.where(alpha > 1e-6, premul[..., :3] / np.maximum(alpha, 1e-6), 0.0)
    return np.concatenate([rgb, alpha], axis=2)


def resize_rgba(pixels: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """
    Resample an RGBA array to `size` (width, height).

    Interpolation runs on premultiplied values so fully transparent pixels
    do not bleed their (meaningless) colour into the edges.
    """
    dst_w, dst_h = size
    src_h, src_w = pixels.shape[:2]
    if (dst_w, dst_h) == (src_w, src_h):
        return pixels.copy()

    if dst_w <= src_w and dst_h <= src_h:
        interpolation = cv2.INTER_AREA
    else:
        interpolation = cv2.INTER_LANCZOS4

    unit = _to_unit(pixels)
    alpha = unit[..., 3:4]
    premul = np.concatenate([unit[..., :3] * alpha, alpha], axis=2)
    resized = np.clip(cv2.resize(premul, (dst_w, dst_h), interpolation=interpolation), 0.0, 1.0)
    return _to_u8(_unpremultiply(resized))


def alpha_over(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
    """Porter-Duff "over" of two same-sized straight-alpha RGBA arrays; returns a new array."""
    s = _to_unit(src)
    d = _to_unit(dst)
    sa = s[..., 3:4]
    da = d[..., 3:4]
    out_a = sa + da * (1.0 - sa)
    premul = s[..., :3] * sa + d[..., :3] * da * (1.0 - sa)
    return _to_u8(_unpremultiply(np.concatenate([premul, out_a], axis=2)))


def flatten_on_white(pixels: np.ndarray, canvas: Optional[np.ndarray] = None) -> np.ndarray:
    """Blend `pixels` over opaque white. The result has alpha 255 everywhere."""
    if canvas is None:
        canvas = np.full(pixels.shape, WHITE, dtype=np.uint8)
    return alpha_over(canvas, pixels)
