"""Utility modules for Past Forward."""

from .image_processor import ImageProcessor
