"""Image loading and encoding utilities."""

import base64
import logging
from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_SOURCE_BYTES = 10 * 1024 * 1024
SUPPORTED_FORMATS = {"PNG": "image/png", "JPEG": "image/jpeg", "WEBP": "image/webp"}


class ImageProcessor:
    """Validates source photos and converts images between bytes and data URLs."""

    @staticmethod
    def detect_mime_type(data: bytes) -> str:
        """
        Detect the MIME type of encoded image data.

        Args:
            data: Encoded image bytes

        Returns:
            MIME type such as "image/png"

        Raises:
            ValueError: If the data is not a PNG, JPEG or WebP image
        """
        try:
            with Image.open(BytesIO(data)) as img:
                fmt = img.format
                img.verify()
        except (UnidentifiedImageError, OSError) as e:
            raise ValueError(f"Not a readable image: {e}")

        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported image format: {fmt}")
        return SUPPORTED_FORMATS[fmt]

    @classmethod
    def load_source(cls, path: Union[str, Path]) -> bytes:
        """Read and validate a source photo from disk."""
        data = Path(path).read_bytes()
        if not data:
            raise ValueError(f"Image file is empty: {path}")
        if len(data) > MAX_SOURCE_BYTES:
            raise ValueError(f"Image too large (>{MAX_SOURCE_BYTES // (1024 * 1024)}MB): {path}")
        cls.detect_mime_type(data)
        logger.debug(f"Loaded source image {path} ({len(data)} bytes)")
        return data

    @classmethod
    def to_data_url(cls, data: bytes) -> str:
        mime_type = cls.detect_mime_type(data)
        b64 = base64.b64encode(data).decode("ascii")
        return f"data:{mime_type};base64,{b64}"

    @staticmethod
    def from_data_url(url: str) -> bytes:
        """Decode a base64 data URL; plain base64 strings are accepted too."""
        if url.startswith("data:"):
            header, _, payload = url.partition(",")
            if ";base64" not in header:
                raise ValueError("Only base64 data URLs are supported")
        else:
            payload = url
        try:
            return base64.b64decode(payload, validate=True)
        except ValueError as e:
            raise ValueError(f"Invalid base64 image payload: {e}")

    @classmethod
    def extension_for(cls, data: bytes) -> str:
        return "." + cls.detect_mime_type(data).split("/", 1)[1].replace("jpeg", "jpg")
