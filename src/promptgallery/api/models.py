"""Pydantic request and response models for the Prompt Gallery API.

These models define the JSON schema of the application endpoints.  FastAPI
uses them for request validation, serialisation and the OpenAPI document.
The Baserow proxy routes are deliberately schema-less: they forward whatever
Baserow returns.

Models
------
GenerateResponse
    Result of ``POST /api/generate``.
DownloadRequest
    Payload for ``POST /api/download``.
GalleryListing
    Result of ``GET /api/gallery``.

The prompt form payload itself is
:class:`~promptgallery.core.models.GenerationRequest`.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from promptgallery.core.models import GalleryImage


class GenerateResponse(BaseModel):
    """Response body for ``POST /api/generate``.

    Attributes:
        status: ``"success"`` when the image was reachable and recorded,
            ``"pending"`` when the workflow answered but the file could not be
            fetched within the retry budget.
        message: Text for the toast notification.
        image: The transient gallery record (only on success).
    """

    status: Literal["success", "pending"]
    message: str
    image: GalleryImage | None = None


class DownloadRequest(BaseModel):
    """Request body for ``POST /api/download``.

    Attributes:
        image_url: Either a media proxy URL produced by the gallery or an
            absolute http(s) URL.  Sent as ``imageUrl`` by the frontend.
    """

    model_config = ConfigDict(populate_by_name=True)

    image_url: str = Field(
        ...,
        alias="imageUrl",
        min_length=1,
        description="Media proxy path or absolute http(s) URL of the image.",
    )


class GalleryListing(BaseModel):
    """Response body for ``GET /api/gallery``."""

    total: int
    page: int
    per_page: int
    pages: int
    category: str
    sort: Literal["newest", "oldest"]
    categories: list[str]
    is_generating: bool
    error: str | None = None
    images: list[GalleryImage] = Field(default_factory=list)
