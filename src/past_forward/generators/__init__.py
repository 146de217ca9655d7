"""Image generator backends."""

from .base import ImageGenerator, load_generator
from .http import HTTPImageGenerator
