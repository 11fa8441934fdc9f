"""Async client for the Baserow REST row API and media server.

Only the three calls the gallery needs are implemented: list the rows of a
table, delete a row, and fetch a media file.  Every non-2xx upstream response
is raised as :class:`~promptgallery.core.errors.BaserowError` carrying the
upstream status, so the proxy routes can forward it unchanged.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from promptgallery.core.config import GalleryConfig
from promptgallery.core.errors import BaserowError
from promptgallery.core.fields import map_baserow_rows
from promptgallery.core.models import BaserowImage

logger = logging.getLogger(__name__)


def _as_id(value: int | str) -> int:
    """Coerce a table or row id, rejecting anything that is not a plain number."""
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        raise BaserowError(f"Invalid Baserow id: {value!r}", status_code=400)
    return int(text)


class BaserowClient:
    """Talk to a Baserow instance on behalf of the gallery.

    Args:
        base_url: Baserow origin, e.g. ``http://host.docker.internal:85``.
        api_token: Database token.  Requests are sent without an
            ``Authorization`` header when it is ``None``.
        field_map: Column mapping used by :meth:`fetch_rows`.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests pass a ``MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        *,
        field_map: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.field_map = field_map
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if api_token:
            headers["Authorization"] = f"Token {api_token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_config(
        cls, cfg: GalleryConfig, transport: httpx.AsyncBaseTransport | None = None
    ) -> BaserowClient:
        return cls(
            cfg.baserow_base_url,
            cfg.baserow_api_token,
            field_map=cfg.field_map,
            timeout=cfg.http_timeout_seconds,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the pooled HTTP client."""
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Baserow request {method} {url} failed: {e}")
            raise BaserowError("Baserow request failed", status_code=500, details=str(e)) from e

        if response.is_success:
            return response

        details = response.text
        logger.error(
            f"Baserow API error: {response.status_code} {response.reason_phrase} "
            f"({method} {url}): {details}"
        )
        raise BaserowError(
            f"Baserow API error: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
            details=details,
            upstream=True,
        )

    async def list_rows(self, table_id: int | str, page: int = 1, size: int = 100) -> dict:
        """Return the raw list payload for one page of a table.

        Returns:
            Baserow's response: ``{"count", "next", "previous", "results"}``.
        """
        url = f"/api/database/rows/table/{_as_id(table_id)}/"
        logger.debug(f"Fetching from Baserow: {self.base_url}{url} page={page} size={size}")
        response = await self._request("GET", url, params={"page": page, "size": size})
        try:
            return response.json()
        except ValueError as e:
            raise BaserowError(
                "Baserow returned invalid JSON", status_code=502, details=response.text
            ) from e

    async def fetch_rows(
        self, table_id: int | str, page: int = 1, size: int = 100
    ) -> list[BaserowImage]:
        """Fetch one page of rows and remap them to :class:`BaserowImage`."""
        payload = await self.list_rows(table_id, page=page, size=size)
        if not isinstance(payload, dict):
            raise BaserowError(
                "Baserow returned an unexpected payload",
                status_code=502,
                details=type(payload).__name__,
            )
        rows = map_baserow_rows(payload, self.field_map)
        logger.debug(f"Fetched {len(rows)} rows from table {table_id}")
        return rows

    async def delete_row(self, table_id: int | str, row_id: int | str) -> None:
        """Delete a single row.  Baserow answers 204 on success."""
        url = f"/api/database/rows/table/{_as_id(table_id)}/{_as_id(row_id)}/"
        logger.info(f"Deleting row {row_id} from table {table_id}")
        await self._request("DELETE", url)

    async def fetch_media(self, path: str) -> tuple[bytes, str | None]:
        """Download a file from the Baserow media server.

        Args:
            path: Path below ``/media/`` (already URL-decoded).

        Returns:
            Tuple of ``(content, content_type)``.
        """
        response = await self._request(
            "GET", f"/media/{path.lstrip('/')}", headers={"Accept": "*/*"}
        )
        return response.content, response.headers.get("content-type")
