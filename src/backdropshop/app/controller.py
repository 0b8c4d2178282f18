"""
Session workflow: upload -> remove background -> (optional) background -> export.

The controller is the only writer of `AppState`. Segmentation can run on a
worker thread; its result is applied only if the session that started it is
still the current one.
"""

from __future__ import annotations

import logging
import mimetypes
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Union

from backdropshop.app.state import AppState
from backdropshop.config import Settings, get_settings
from backdropshop.core.compositor import compose, composite_over_background
from backdropshop.core.models import CompositionRequest, EncodedOutput, ImageUpload, OutputMode, RasterImage
from backdropshop.core.pipeline import Segmenter
from backdropshop.core.raster import decode_raster
from backdropshop.errors import (
    BackdropShopError,
    InvalidUpload,
    SegmentationError,
    SessionError,
)

logger = logging.getLogger(__name__)


class SessionController:
    def __init__(
        self,
        segmenter: Segmenter,
        settings: Optional[Settings] = None,
        state: Optional[AppState] = None,
    ):
        self.settings = settings or get_settings()
        self.state = state or AppState()
        self._segmenter = segmenter
        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None

    # ---------- Uploads ----------

    def _make_upload(self, data: bytes, file_name: str, mime_type: Optional[str], invalid_msg: str) -> ImageUpload:
        mime = mime_type or mimetypes.guess_type(file_name)[0] or ""
        if not mime.startswith("image/") or not data:
            raise InvalidUpload(invalid_msg)
        if len(data) > self.settings.max_upload_bytes:
            limit_mb = self.settings.max_upload_bytes / (1024 * 1024)
            raise InvalidUpload(f"Image is too large; the limit is {limit_mb:.0f}MB.")
        return ImageUpload(file_name=file_name, mime_type=mime, data=data)

    def load_subject(self, data: bytes, file_name: str, mime_type: Optional[str] = None) -> None:
        """Start a new session with this subject photo. Any in-flight work is abandoned."""
        try:
            upload = self._make_upload(
                data, file_name, mime_type, "Please upload a valid image file (PNG, JPG, etc.)."
            )
        except InvalidUpload as exc:
            self.state.error_message = exc.user_message
            raise

        with self._lock:
            self.state = AppState(subject=upload)
        logger.info("Loaded subject %s (%s, %d bytes)", file_name, upload.mime_type, len(data))

    def set_background(self, data: bytes, file_name: str, mime_type: Optional[str] = None) -> None:
        state = self.state
        if state.foreground is None:
            raise SessionError("Remove the background before adding a new one.")

        try:
            upload = self._make_upload(
                data, file_name, mime_type, "Please upload a valid image file for the background."
            )
            raster = decode_raster(upload.data, label="background image")
        except BackdropShopError as exc:
            state.error_message = exc.user_message
            raise

        with self._lock:
            state.background_upload = upload
            state.background = raster
            # A new background always starts from PNG.
            state.output_mode = OutputMode.TRANSPARENT_PNG
            state.error_message = None
        logger.info("Background set: %s (%dx%d)", file_name, raster.width, raster.height)

    def clear_background(self) -> None:
        with self._lock:
            self.state.background_upload = None
            self.state.background = None

    def select_output_mode(self, mode: Union[OutputMode, str]) -> OutputMode:
        try:
            mode = OutputMode(mode)
        except ValueError as exc:
            raise SessionError(f"Unknown output mode: {mode!r}") from exc
        if mode not in self.state.available_modes:
            raise SessionError(f"Output mode '{mode.value}' is not available with a background image.")
        self.state.output_mode = mode
        return mode

    # ---------- Background removal ----------

    def _is_current(self, state: AppState, subject: ImageUpload) -> bool:
        return self.state is state and state.subject is subject

    def _begin(self) -> tuple[AppState, ImageUpload]:
        with self._lock:
            state = self.state
            subject = state.subject
            if subject is None:
                raise SessionError("Upload a photo first.")
            state.is_loading = True
            state.error_message = None
            state.foreground = None
        return state, subject

    def _segment(self, state: AppState, subject: ImageUpload) -> Optional[RasterImage]:
        try:
            raster = self._segmenter.segment_foreground(subject.data, subject.mime_type)
        except SegmentationError as exc:
            with self._lock:
                if self._is_current(state, subject):
                    state.error_message = exc.user_message
            raise
        finally:
            with self._lock:
                if self._is_current(state, subject):
                    state.is_loading = False

        with self._lock:
            if not self._is_current(state, subject):
                logger.info("Discarding segmentation result for abandoned upload %s", subject.file_name)
                return None
            state.foreground = raster
        return raster

    def remove_background(self) -> Optional[RasterImage]:
        """
        Segment the current subject and store the result.

        Returns None when the session was reset or replaced while the call
        was in flight; the result is then dropped.
        """
        state, subject = self._begin()
        return self._segment(state, subject)

    def start_remove_background(
        self, on_done: Optional[Callable[["Future[Optional[RasterImage]]"], None]] = None
    ) -> "Future[Optional[RasterImage]]":
        """Run `remove_background` on a worker thread."""
        state, subject = self._begin()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="backdropshop-segment")
        future = self._executor.submit(self._segment, state, subject)
        if on_done is not None:
            future.add_done_callback(on_done)
        return future

    # ---------- Output ----------

    def _require_foreground(self) -> RasterImage:
        if self.state.foreground is None:
            raise SessionError("Remove the background first.")
        return self.state.foreground

    def preview(self) -> Optional[RasterImage]:
        """What the user should see: the composite if a background is set, else the cutout."""
        state = self.state
        if state.foreground is None:
            return None
        if state.background is None:
            return state.foreground
        try:
            return RasterImage(pixels=composite_over_background(state.foreground, state.background))
        except BackdropShopError as exc:
            state.error_message = exc.user_message
            raise

    def export(self) -> EncodedOutput:
        state = self.state
        request = CompositionRequest(
            foreground=self._require_foreground(),
            background=state.background,
            mode=state.output_mode,
            subject_name=state.subject.file_name if state.subject else "image",
        )
        try:
            return compose(request, jpeg_quality=self.settings.jpeg_quality)
        except BackdropShopError as exc:
            state.error_message = exc.user_message
            raise

    # ---------- Lifecycle ----------

    def reset(self) -> None:
        """Replace the session state; in-flight results for the old one are discarded."""
        with self._lock:
            self.state = AppState()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
