"""Core services: configuration, Baserow access, webhook trigger and gallery state."""

from .baserow import BaserowClient
from .config import GalleryConfig, config
from .errors import BaserowError, GalleryError, WebhookError
from .gallery import GalleryState
from .models import BaserowImage, GalleryImage, GenerationRequest, WebhookResult
from .readiness import wait_until_ready
from .webhook import WebhookClient

__all__ = [
    "BaserowClient",
    "BaserowError",
    "BaserowImage",
    "GalleryConfig",
    "GalleryError",
    "GalleryImage",
    "GalleryState",
    "GenerationRequest",
    "WebhookClient",
    "WebhookError",
    "WebhookResult",
    "config",
    "wait_until_ready",
]
