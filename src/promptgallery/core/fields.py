"""Mapping between Baserow row payloads and gallery records.

Baserow returns user columns keyed by their internal identifiers
(``field_6699``, ``field_6700``, ...).  This module translates those keys into
application names using the configured ``field_map`` and rewrites media URLs
so the browser loads them through the same-origin proxy.

Baserow builds media URLs from its own public address, which inside a Docker
network is usually not reachable by the browser
(``http://host.docker.internal:85/media/...``).  Every ``/media/<path>`` URL
is therefore rewritten to ``/api/baserow/media?path=<path>``.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from promptgallery.core.config import DEFAULT_FIELD_MAP
from promptgallery.core.models import BaserowFile, BaserowImage, GalleryImage

logger = logging.getLogger(__name__)

MEDIA_PROXY_PATH = "/api/baserow/media"

_MEDIA_RE = re.compile(r"/media/(.+)$")


def transform_image_url(url: str | None) -> str:
    """Rewrite a Baserow media URL to the media proxy route.

    Args:
        url: URL as stored by Baserow.

    Returns:
        ``/api/baserow/media?path=<encoded path>`` for media URLs, the input
        unchanged for anything else, and ``""`` for empty input.
    """
    if not url:
        return ""
    match = _MEDIA_RE.search(url)
    if not match:
        return url
    return f"{MEDIA_PROXY_PATH}?path={quote(match.group(1), safe='')}"


def _as_text(value: Any) -> str:
    # Single-select columns arrive as {"id": .., "value": ..}
    if value is None:
        return ""
    if isinstance(value, dict):
        return str(value.get("value") or "")
    return str(value)


def _map_files(value: Any) -> list[BaserowFile]:
    if not isinstance(value, list):
        return []

    files: list[BaserowFile] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        try:
            attachment = BaserowFile.model_validate(item)
        except ValidationError as e:
            logger.warning(f"Skipping malformed Baserow attachment: {e}")
            continue
        attachment.url = transform_image_url(attachment.url)
        for thumbnail in attachment.thumbnails.values():
            thumbnail.url = transform_image_url(thumbnail.url)
        files.append(attachment)
    return files


def map_baserow_row(raw: dict[str, Any], field_map: dict[str, str] | None = None) -> BaserowImage:
    """Translate a raw Baserow row into a :class:`BaserowImage`.

    Missing or null columns fall back to empty values so a half-filled row
    (the workflow writes the image before the metadata) still renders.

    Args:
        raw: Row dictionary from the Baserow ``results`` list.
        field_map: Application field name -> ``field_<id>`` mapping.

    Returns:
        The remapped row.
    """
    columns = field_map or DEFAULT_FIELD_MAP
    source_url = _as_text(raw.get(columns["image_url"]))

    return BaserowImage(
        id=raw["id"],
        order=_as_text(raw.get("order")),
        image=_map_files(raw.get(columns["image"])),
        user_prompt=_as_text(raw.get(columns["user_prompt"])),
        agent_prompt=_as_text(raw.get(columns["agent_prompt"])),
        category=_as_text(raw.get(columns["category"])),
        created_on=_as_text(raw.get(columns["created_on"])),
        seed=_as_text(raw.get(columns["seed"])),
        image_url=transform_image_url(source_url),
        source_url=source_url,
    )


def map_baserow_rows(
    payload: dict[str, Any], field_map: dict[str, str] | None = None
) -> list[BaserowImage]:
    """Remap every row of a Baserow list response.

    Rows without an ``id`` cannot be addressed for deletion and are skipped,
    as are rows that fail validation.
    """
    if not isinstance(payload, dict):
        logger.warning(f"Unexpected Baserow list payload: {type(payload).__name__}")
        return []

    results = payload.get("results")
    if not isinstance(results, list):
        return []

    rows: list[BaserowImage] = []
    for raw in results:
        if not isinstance(raw, dict) or "id" not in raw:
            logger.warning(f"Skipping Baserow row without id: {raw!r}")
            continue
        try:
            rows.append(map_baserow_row(raw, field_map))
        except ValidationError as e:
            logger.warning(f"Skipping malformed Baserow row {raw.get('id')!r}: {e}")
    return rows


def to_gallery_image(row: BaserowImage) -> GalleryImage:
    """Convert a remapped table row into the gallery record shape.

    When the image URL column is empty the first attachment is used instead.
    """
    image_url = row.image_url
    if not image_url and row.image:
        image_url = row.image[0].url

    return GalleryImage(
        id=str(row.id),
        image_url=image_url,
        prompt=row.user_prompt,
        category=row.category,
        created_at=row.created_on,
        agent_prompt=row.agent_prompt,
        source_url=row.source_url,
        is_local=False,
    )
