"""Generic HTTP image generation backend."""

import asyncio
import logging
import os
from functools import partial
from typing import Any, Dict, Optional

import requests

from ..models import GeneratorError
from ..utils.image_processor import ImageProcessor
from .base import ImageGenerator

logger = logging.getLogger(__name__)

API_KEY_ENV = "PAST_FORWARD_API_KEY"


class HTTPImageGenerator(ImageGenerator):
    """Posts the source image and prompt to an image-editing endpoint.

    Request body: {"image": <data URL>, "prompt": <text>}. The endpoint may
    answer with raw image bytes (image/* content type) or JSON carrying the
    image as a data URL or base64 string under "image".
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = 120.0,
        headers: Optional[Dict[str, str]] = None,
    ):
        if not endpoint:
            raise GeneratorError("Generator endpoint not set")
        self.endpoint = endpoint
        self.api_key = api_key or os.getenv(API_KEY_ENV, "")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(headers or {})
        if self.api_key:
            self.session.headers["Authorization"] = f"Bearer {self.api_key}"

    def _encode_source(self, source_image: Any) -> str:
        if isinstance(source_image, (bytes, bytearray)):
            return ImageProcessor.to_data_url(bytes(source_image))
        if isinstance(source_image, str):
            return source_image
        raise GeneratorError(f"Unsupported source image type: {type(source_image).__name__}")

    def _post(self, payload: Dict[str, Any]) -> bytes:
        try:
            r = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise GeneratorError(f"request failed: {e}")

        if r.status_code >= 300:
            raise GeneratorError(f"generation failed: {r.status_code} {r.text[:200]}")

        content_type = r.headers.get("content-type", "")
        if content_type.startswith("image/"):
            return r.content

        try:
            data = r.json()
        except ValueError:
            raise GeneratorError(f"unexpected response content type: {content_type or 'unknown'}")

        if isinstance(data, dict) and data.get("error"):
            raise GeneratorError(str(data["error"]))

        image = data.get("image") if isinstance(data, dict) else None
        if not image:
            raise GeneratorError("no image in response")
        try:
            return ImageProcessor.from_data_url(image)
        except ValueError as e:
            raise GeneratorError(str(e))

    async def generate(self, source_image: Any, prompt: str) -> bytes:
        payload = {"image": self._encode_source(source_image), "prompt": prompt}
        logger.debug(f"POST {self.endpoint} ({len(prompt)} char prompt)")
        return await asyncio.get_event_loop().run_in_executor(None, partial(self._post, payload))

    def close(self) -> None:
        self.session.close()
