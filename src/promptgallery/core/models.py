"""Record models shared by the Baserow client, the webhook and the gallery.

Models
------
BaserowThumbnail, BaserowFile
    A file attachment stored in a Baserow file field.
BaserowImage
    One gallery row after its ``field_<id>`` columns have been remapped to
    application names.
GalleryImage
    The shape rendered by the gallery: either a table row or a transient
    record created right after a successful generation.
GenerationRequest
    The prompt form submission forwarded to the workflow webhook.
WebhookResult
    The first successful item of the webhook response.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BaserowThumbnail(BaseModel):
    """A generated thumbnail of an attachment."""

    url: str = ""
    width: int | None = None
    height: int | None = None


class BaserowFile(BaseModel):
    """A single file attachment from a Baserow file field."""

    model_config = ConfigDict(extra="ignore")

    url: str = ""
    thumbnails: dict[str, BaserowThumbnail] = Field(default_factory=dict)
    name: str = ""
    visible_name: str | None = None
    size: int | None = None
    mime_type: str | None = None
    is_image: bool = False
    image_width: int | None = None
    image_height: int | None = None
    uploaded_at: str | None = None

    @field_validator("thumbnails", mode="before")
    @classmethod
    def _null_thumbnails(cls, value: object) -> object:
        # Non-image attachments carry "thumbnails": null
        return {} if value is None else value

    @field_validator("url", "name", mode="before")
    @classmethod
    def _null_text(cls, value: object) -> object:
        return "" if value is None else value


class BaserowImage(BaseModel):
    """A gallery table row with application-level field names.

    Attributes:
        id: Baserow row id.  Row ids grow monotonically, so they double as
            the creation order used for sorting.
        order: Baserow manual ordering value.
        image: File attachments of the image column.
        user_prompt: Prompt typed by the user.
        agent_prompt: Prompt the workflow actually sent to the model.
        category: Free-text category.
        created_on: Creation timestamp as stored in the table.
        seed: Seed used for the generation.
        image_url: Image URL rewritten to the same-origin media proxy.
        source_url: Image URL exactly as stored in the table.
    """

    id: int
    order: str = ""
    image: list[BaserowFile] = Field(default_factory=list)
    user_prompt: str = ""
    agent_prompt: str = ""
    category: str = ""
    created_on: str = ""
    seed: str = ""
    image_url: str = ""
    source_url: str = ""


class GalleryImage(BaseModel):
    """An image as shown in the gallery grid and detail modal."""

    id: str
    image_url: str
    prompt: str = ""
    category: str = ""
    created_at: str = ""
    agent_prompt: str = ""
    source_url: str = ""
    is_local: bool = False


class GenerationRequest(BaseModel):
    """Prompt form submission.

    Attributes:
        prompt: Text prompt.  Must contain non-whitespace characters.
        category: Optional category; the gallery shows ``Uncategorized`` when
            it is left blank.
        image_count: Number of images the workflow should produce (1-10).
        seed: Seed passed through to the workflow as text.
        width: Optional image width in pixels.
        height: Optional image height in pixels.
    """

    prompt: str = Field(..., description="Text prompt describing the image.")
    category: str = Field(default="", description="Optional gallery category.")
    image_count: int = Field(default=1, ge=1, le=10, description="Images to generate (1-10).")
    seed: str = Field(default="0", description="Seed passed to the workflow.")
    width: int | None = Field(default=None, ge=64, le=4096)
    height: int | None = Field(default=None, ge=64, le=4096)

    @field_validator("category", "seed")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    def has_prompt(self) -> bool:
        return bool(self.prompt and self.prompt.strip())


class WebhookResult(BaseModel):
    """Successful webhook response item."""

    status: str
    image_url: str
