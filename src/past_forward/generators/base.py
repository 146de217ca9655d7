"""Base abstraction for image generation backends."""

import importlib
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from ..models import ConfigError


class ImageGenerator(ABC):
    """Turns a source image and a text prompt into a generated image.

    Instances are callable, so they can be handed to the orchestrator
    wherever a generate function is expected.
    """

    @abstractmethod
    async def generate(self, source_image: Any, prompt: str) -> bytes:
        """Generate one image. Raise on failure."""
        pass

    async def __call__(self, source_image: Any, prompt: str) -> bytes:
        return await self.generate(source_image, prompt)

    def close(self) -> None:
        """Release any held resources."""
        pass


def load_generator(path: str, config: Optional[Dict[str, Any]] = None) -> Callable:
    """Resolve a "package.module:attribute" reference to a generate callable.

    ImageGenerator subclasses and other classes are instantiated with the
    given config; functions are returned as is.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Generator reference must look like 'module:attribute', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import generator module {module_name}: {e}")

    try:
        target = getattr(module, attr)
    except AttributeError:
        raise ConfigError(f"Module {module_name} has no attribute {attr}")

    if inspect.isclass(target):
        return target(**(config or {}))
    if not callable(target):
        raise ConfigError(f"Generator {path} is not callable")
    return target
