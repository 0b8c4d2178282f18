"""
End-to-end export pipeline.

bytes in -> (segmentation || background decode) -> compose -> EncodedOutput.

The foreground (remote segmentation) and the background (local decode) load
concurrently; composition starts only after both have finished, whichever
finishes first.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from functools import partial
from typing import Callable, Optional, Protocol, Tuple

from backdropshop.core.compositor import compose
from backdropshop.core.models import (
    DEFAULT_JPEG_QUALITY,
    CompositionRequest,
    EncodedOutput,
    OutputMode,
    RasterImage,
)
from backdropshop.core.raster import decode_raster

logger = logging.getLogger(__name__)


class Segmenter(Protocol):
    def segment_foreground(self, image_bytes: bytes, mime_type: str) -> RasterImage:
        ...


def gather_inputs(
    load_foreground: Callable[[], RasterImage],
    load_background: Optional[Callable[[], RasterImage]] = None,
) -> Tuple[RasterImage, Optional[RasterImage]]:
    """
    Run both loaders concurrently and wait for both to complete.

    If either loader fails, its exception is re-raised (foreground first)
    once both have settled.
    """
    if load_background is None:
        return load_foreground(), None

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="backdropshop-load") as pool:
        fg_future = pool.submit(load_foreground)
        bg_future = pool.submit(load_background)
        wait([fg_future, bg_future])

    for future in (fg_future, bg_future):
        exc = future.exception()
        if exc is not None:
            raise exc
    return fg_future.result(), bg_future.result()


def run_pipeline(
    segmenter: Segmenter,
    subject_bytes: bytes,
    mime_type: str,
    subject_name: str,
    mode: OutputMode = OutputMode.TRANSPARENT_PNG,
    background_bytes: Optional[bytes] = None,
    jpeg_quality: int = DEFAULT_JPEG_QUALITY,
) -> EncodedOutput:
    """Segment the subject, decode the optional background, and export."""
    load_background = None
    if background_bytes is not None and mode is not OutputMode.PASSPORT_JPEG:
        load_background = partial(decode_raster, background_bytes, label="background image")

    foreground, background = gather_inputs(
        lambda: segmenter.segment_foreground(subject_bytes, mime_type),
        load_background,
    )
    logger.info(
        "pipeline: foreground %dx%d, background %s, mode=%s",
        foreground.width,
        foreground.height,
        f"{background.width}x{background.height}" if background is not None else "none",
        mode.value,
    )
    request = CompositionRequest(
        foreground=foreground,
        background=background,
        mode=mode,
        subject_name=subject_name,
    )
    return compose(request, jpeg_quality=jpeg_quality)
