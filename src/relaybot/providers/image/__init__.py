from .base import BaseImageProvider
from .stability_provider import StabilityImageProvider

__all__ = [
    "BaseImageProvider",
    "StabilityImageProvider",
]
