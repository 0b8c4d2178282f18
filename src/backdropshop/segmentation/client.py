"""
Remote background removal through the Gemini image model.

One `generate_content` call per invocation: the subject image plus a fixed
prompt go out, and the first inline image part of the reply comes back as an
RGBA raster. No retries; that policy belongs to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from google import genai
from google.genai import types

from backdropshop.config import Settings, get_settings
from backdropshop.core.models import RasterImage
from backdropshop.core.raster import decode_raster
from backdropshop.errors import DecodeFailure, ModelRefused, TransportFailure

logger = logging.getLogger(__name__)

NO_IMAGE_REASON = (
    "Model did not return an image. It might be due to safety policies "
    "or an inability to process the request."
)
RESPONSE_MODALITIES = ["IMAGE", "TEXT"]


def _response_parts(response: Any) -> list:
    """Parts of the first candidate, or [] when the reply has none."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = getattr(candidates[0], "content", None)
    return list(getattr(content, "parts", None) or [])


def _first_image_payload(parts: list) -> Optional[bytes]:
    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            return inline.data
    return None


def _refusal_reason(parts: list) -> str:
    for part in parts:
        text = getattr(part, "text", None)
        if text:
            return text
    return NO_IMAGE_REASON


class SegmentationClient:
    """
    Thin wrapper over `google.genai.Client`.

    `client` may be any object exposing `models.generate_content(...)`; when
    omitted a real client is built from settings on first use.
    """

    def __init__(self, client: Any = None, settings: Optional[Settings] = None):
        self._client = client
        self.settings = settings or get_settings()

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.settings.gemini_api_key:
                raise TransportFailure("GEMINI_API_KEY environment variable not set.")
            self._client = genai.Client(
                api_key=self.settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=int(self.settings.request_timeout_seconds * 1000)),
            )
        return self._client

    def segment_foreground(self, image_bytes: bytes, mime_type: str) -> RasterImage:
        """
        Return the subject of `image_bytes` on a transparent background.

        Raises:
            ModelRefused: the model replied without an image.
            TransportFailure: the call itself failed, or the reply could not be decoded.
        """
        client = self._get_client()
        contents = [
            types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
            self.settings.removal_prompt,
        ]
        config = types.GenerateContentConfig(response_modalities=RESPONSE_MODALITIES)

        try:
            response = client.models.generate_content(
                model=self.settings.gemini_model,
                contents=contents,
                config=config,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error calling Gemini API: %s", exc)
            raise TransportFailure(f"Gemini request failed: {exc}") from exc

        parts = _response_parts(response)
        payload = _first_image_payload(parts)
        if payload is None:
            reason = _refusal_reason(parts)
            logger.warning("Model returned no image: %s", reason)
            raise ModelRefused(reason)

        try:
            raster = decode_raster(payload, label="segmented image")
        except DecodeFailure as exc:
            raise TransportFailure(f"Model returned an unreadable image: {exc}") from exc

        logger.info("Segmentation returned %dx%d %s", raster.width, raster.height, raster.source_format)
        return raster
