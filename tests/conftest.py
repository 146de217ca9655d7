"""Shared fixtures."""

import io

import pytest
from PIL import Image


def make_image_bytes(fmt: str = "PNG", color=(200, 120, 40)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes():
    """Small valid PNG image."""
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    """Small valid JPEG image."""
    return make_image_bytes("JPEG")
