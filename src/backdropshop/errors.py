from __future__ import annotations


class BackdropShopError(Exception):
    """Base class for every error raised by BackdropShop."""

    default_message = "An unexpected error occurred."

    @property
    def user_message(self) -> str:
        """Short text suitable for showing to the end user."""
        return str(self) or self.default_message


# ---------- Segmentation boundary ----------

class SegmentationError(BackdropShopError):
    default_message = "Failed to remove background. Please try another image."


class ModelRefused(SegmentationError):
    """The remote model answered, but without an image."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    @property
    def user_message(self) -> str:
        return f"The AI model could not remove the background: {self.reason}"


class TransportFailure(SegmentationError):
    """Network, API or protocol error while talking to the remote model."""

    @property
    def user_message(self) -> str:
        return "Failed to communicate with the AI model. Please try again later."


# ---------- Compositor / exporter ----------

class ExportError(BackdropShopError):
    """
    A failure of the current export attempt.

    `stage` names the step that failed so callers can present an accurate message.
    """
    stage = "compose"

    @property
    def user_message(self) -> str:
        return f"Export failed during {self.stage}: {self}"


class DecodeFailure(ExportError):
    stage = "decode"


class RenderTargetUnavailable(ExportError):
    stage = "render-target"


class CompositionFailure(ExportError):
    stage = "compose"


# ---------- Session ----------

class InvalidUpload(BackdropShopError):
    default_message = "Please upload a valid image file (PNG, JPG, etc.)."


class SessionError(BackdropShopError):
    """An operation was requested in the wrong phase of the session."""
