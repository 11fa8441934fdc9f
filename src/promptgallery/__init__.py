"""Prompt Gallery - prompt-driven image generation gallery backed by Baserow."""

__version__ = "0.1.0"

from promptgallery.core.config import GalleryConfig, config

__all__ = [
    "GalleryConfig",
    "config",
]
