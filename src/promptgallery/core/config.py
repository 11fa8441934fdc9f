"""Configuration management for Prompt Gallery.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the PROMPTGALLERY_
prefix, allowing the service to be pointed at a different Baserow instance or
workflow webhook without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (PROMPTGALLERY_* prefix)
2. .env file in the project root
3. Default values defined in GalleryConfig

Example .env file:
    PROMPTGALLERY_BASEROW_BASE_URL=http://localhost:85
    PROMPTGALLERY_BASEROW_API_TOKEN=xxxxxxxx
    PROMPTGALLERY_IMAGES_TABLE_ID=693
    PROMPTGALLERY_WEBHOOK_URL=http://localhost:5678/webhook/image-gen-trigger

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
This ensures a single source of truth for all configuration values across
the application.

Usage Example
-------------
    from promptgallery.core.config import config

    print(config.baserow_base_url)
    print(config.images_table_id)

Baserow Column Mapping
----------------------
Baserow exposes user columns as ``field_<id>`` keys.  The ``field_map``
setting maps the application-level names (``image``, ``user_prompt``, ...)
onto those identifiers.  Override it with a JSON object, e.g.::

    PROMPTGALLERY_FIELD_MAP='{"image": "field_101", "user_prompt": "field_102"}'

Keys missing from an override fall back to the defaults.

See Also
--------
- .env.example: Template with all available configuration options
- GalleryConfig: Full configuration class documentation
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_FIELD_MAP: dict[str, str] = {
    "image": "field_6699",
    "user_prompt": "field_6700",
    "agent_prompt": "field_6701",
    "category": "field_6702",
    "created_on": "field_6703",
    "seed": "field_6704",
    "image_url": "field_6705",
}


class GalleryConfig(BaseSettings):
    """Main configuration for Prompt Gallery.

    Values are loaded from environment variables with the PROMPTGALLERY_
    prefix, with fallback to defaults defined here.

    Attributes
    ----------
    Baserow Settings:
        baserow_base_url : str
            Origin of the Baserow instance (REST API and media server)
        baserow_api_token : str | None
            Database token sent as ``Authorization: Token <token>``
        images_table_id : int
            Table holding the gallery rows
        page_size : int
            Rows requested per gallery refresh
        field_map : dict[str, str]
            Application field name -> Baserow ``field_<id>`` column

    Generation Settings:
        webhook_url : str
            Workflow webhook that produces images from prompt parameters
        readiness_initial_delay : float
            Seconds to wait before the first readiness probe
        readiness_max_attempts : int
            Maximum number of readiness probes
        readiness_interval : float
            Seconds between failed readiness probes

    Gallery Refresh:
        refresh_interval : float
            Re-poll period while a generation is pending
        refresh_burst_delays : list[float]
            One-shot refreshes scheduled after a new image arrives

    Server Settings:
        server_host : str
            Server bind address
        server_port : int
            Server port (1024-65535)
        log_level : str
            Root logging level

    Notes
    -----
    - The global instance is built once at import time
    - To modify config, set environment variables and restart the application
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="PROMPTGALLERY_",
        case_sensitive=False,
    )

    # Baserow settings
    baserow_base_url: str = Field(
        default="http://host.docker.internal:85",
        description="Baserow origin serving both the REST API and /media files",
    )
    baserow_api_token: str | None = Field(
        default=None,
        description="Baserow database token",
    )
    images_table_id: int = Field(
        default=693,
        description="Baserow table holding the gallery rows",
        ge=1,
    )
    page_size: int = Field(
        default=100,
        description="Rows requested per gallery refresh",
        ge=1,
        le=200,
    )
    field_map: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_FIELD_MAP),
        description="Application field name -> Baserow field_<id> column",
    )

    # Webhook and readiness settings
    webhook_url: str = Field(
        default="http://host.docker.internal:5678/webhook/image-gen-trigger",
        description="Workflow webhook that generates images",
    )
    http_timeout_seconds: float = Field(default=30.0, gt=0)
    readiness_initial_delay: float = Field(
        default=1.0,
        description="Seconds to wait before probing a freshly generated image",
        ge=0,
    )
    readiness_max_attempts: int = Field(
        default=5,
        description="Maximum number of readiness probes",
        ge=1,
    )
    readiness_interval: float = Field(
        default=1.0,
        description="Seconds between failed readiness probes",
        ge=0,
    )

    # Gallery refresh
    refresh_interval: float = Field(
        default=2.0,
        description="Gallery re-poll period while a generation is pending",
        gt=0,
    )
    refresh_burst_delays: list[float] = Field(
        default_factory=lambda: [2.0, 4.0, 6.0],
        description="Extra one-shot refreshes after a new image (seconds)",
    )
    media_cache_max_age: int = Field(default=3600, ge=0)

    # Paths
    templates_dir: Path = Field(default=PACKAGE_DIR / "templates")
    static_dir: Path = Field(default=PACKAGE_DIR / "static")

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(
        default=3000,
        description="Server port",
        ge=1024,
        le=65535,
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    @field_validator("field_map")
    @classmethod
    def _merge_field_map(cls, value: dict[str, str]) -> dict[str, str]:
        """Fill columns missing from an override with the default mapping."""
        unknown = set(value) - set(DEFAULT_FIELD_MAP)
        if unknown:
            raise ValueError(f"Unknown gallery fields in field_map: {sorted(unknown)}")
        return {**DEFAULT_FIELD_MAP, **value}

    @field_validator("refresh_burst_delays")
    @classmethod
    def _check_burst_delays(cls, value: list[float]) -> list[float]:
        if any(delay < 0 for delay in value):
            raise ValueError("refresh_burst_delays must not contain negative values")
        return value

    @field_validator("baserow_base_url", "webhook_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


# Global configuration instance
# Loads values from environment variables (PROMPTGALLERY_* prefix) and .env file.
config = GalleryConfig()
