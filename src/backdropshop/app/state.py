from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from backdropshop.core.models import ImageUpload, OutputMode, RasterImage


@dataclass
class AppState:
    """
    State for a single session.

    The controller owns this object and replaces it wholesale on reset or on
    a new subject upload; work started against an old instance is discarded.
    """
    # Input
    subject: Optional[ImageUpload] = None

    # Segmentation result (RGBA, straight alpha)
    foreground: Optional[RasterImage] = None

    # Optional replacement background
    background_upload: Optional[ImageUpload] = None
    background: Optional[RasterImage] = None

    # User choice
    output_mode: OutputMode = OutputMode.TRANSPARENT_PNG

    # Status
    is_loading: bool = False
    error_message: Optional[str] = None

    @property
    def has_background(self) -> bool:
        return self.background is not None

    @property
    def available_modes(self) -> tuple[OutputMode, ...]:
        return OutputMode.available(self.has_background)
