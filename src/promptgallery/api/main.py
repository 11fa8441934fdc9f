"""Prompt Gallery - FastAPI Application.

This module is the single entry point for the web application.  It defines
the FastAPI application factory, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
The application is a thin same-origin layer in front of two external
services:

- **Baserow** stores one row per generated image.  The ``/api/baserow``
  routes forward listing, delete and media requests to it, adding the
  database token on the server side so it never reaches the browser.
- **The generation workflow** is triggered through a webhook.
  ``POST /api/generate`` calls it, waits until the returned image URL is
  reachable, and records the image in the gallery state.
- **Gallery state** (:class:`~promptgallery.core.gallery.GalleryState`)
  keeps the last table snapshot and re-polls Baserow while a generation is
  pending.
- **The HTML page** is served as a raw ``HTMLResponse``; all dynamic data is
  fetched by the page script.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/``                         Serve the main HTML page
GET       ``/api/config``               Frontend settings and categories
GET       ``/api/baserow``              Proxy: list table rows
DELETE    ``/api/baserow``              Proxy: delete a table row
GET       ``/api/baserow/media``        Proxy: Baserow media file
POST      ``/api/download``             Fetch an image as an attachment
GET       ``/api/test``                 Routing diagnostic
DELETE    ``/api/test``                 Routing diagnostic (echoes params)
POST      ``/api/generate``             Trigger the generation webhook
GET       ``/api/gallery``              Filtered, sorted gallery listing
GET       ``/api/gallery/{id}``         Single gallery record
DELETE    ``/api/gallery/{id}``         Delete a gallery image
========  ============================  ====================================

Usage
-----
CLI (installed entry point)::

    promptgallery

Direct invocation::

    python -m promptgallery.api.main
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Literal
from urllib.parse import parse_qs, urlsplit

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from promptgallery import __version__
from promptgallery.api.gallery_store import (
    collect_categories,
    filter_gallery_entries,
    paginate_gallery_entries,
    sort_gallery_entries,
)
from promptgallery.api.models import DownloadRequest, GalleryListing, GenerateResponse
from promptgallery.core.baserow import BaserowClient
from promptgallery.core.config import GalleryConfig, config
from promptgallery.core.errors import BaserowError, WebhookError
from promptgallery.core.fields import MEDIA_PROXY_PATH
from promptgallery.core.gallery import GalleryState
from promptgallery.core.models import GalleryImage, GenerationRequest
from promptgallery.core.readiness import wait_until_ready
from promptgallery.core.webhook import WebhookClient

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Application lifecycle - outbound clients and gallery state.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Creates the shared ``httpx.AsyncClient``, the Baserow and webhook
        clients and the :class:`GalleryState`, stores them on ``app.state``
        and loads the first table snapshot.  A failing first load is logged
        and leaves the gallery empty; the next refresh retries.

    On shutdown:
        Cancels every pending refresh timer and closes the HTTP clients.

    Args:
        app: The FastAPI application instance.  ``app.state.config`` and
            ``app.state.transport`` are set by :func:`create_app`.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    cfg: GalleryConfig = app.state.config
    transport: httpx.AsyncBaseTransport | None = app.state.transport

    # --- Startup -----------------------------------------------------------
    http = httpx.AsyncClient(
        timeout=httpx.Timeout(cfg.http_timeout_seconds),
        follow_redirects=True,
        transport=transport,
    )
    baserow = BaserowClient.from_config(cfg, transport=transport)
    gallery = GalleryState(
        baserow,
        cfg.images_table_id,
        page_size=cfg.page_size,
        refresh_interval=cfg.refresh_interval,
        burst_delays=cfg.refresh_burst_delays,
    )
    app.state.http = http
    app.state.baserow = baserow
    app.state.webhook = WebhookClient(cfg.webhook_url, http)
    app.state.gallery = gallery

    logger.info(
        f"Baserow configuration: table ID {cfg.images_table_id}, "
        f"API token {'Set' if cfg.baserow_api_token else 'Not Set'}"
    )
    await gallery.refresh()

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    await gallery.close()
    await baserow.aclose()
    await http.aclose()
    logger.info("Gallery timers cancelled and HTTP clients closed.")


def create_app(
    cfg: GalleryConfig | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        cfg: Configuration to use.  Defaults to the global ``config``.
        transport: Optional httpx transport shared by every outbound client.
            Tests pass an ``httpx.MockTransport`` that plays Baserow and the
            webhook.

    Returns:
        The configured application.
    """
    cfg = cfg or config

    app = FastAPI(
        title="Prompt Gallery",
        description="Prompt-driven image generation gallery backed by Baserow.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.transport = transport

    # Allow cross-origin requests so the frontend can be served from a
    # different port during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if cfg.static_dir.is_dir():
        app.mount("/static", StaticFiles(directory=str(cfg.static_dir)), name="static")
    else:
        logger.warning(f"Static directory not found: {cfg.static_dir}")

    app.include_router(router)
    return app


# ---------------------------------------------------------------------------
# Request-scoped accessors.
# ---------------------------------------------------------------------------


def _config(request: Request) -> GalleryConfig:
    return request.app.state.config


def _gallery(request: Request) -> GalleryState:
    return request.app.state.gallery


def _baserow(request: Request) -> BaserowClient:
    return request.app.state.baserow


def _error(message: str, status_code: int, details: str = "") -> JSONResponse:
    body = {"error": message}
    if details:
        body["details"] = details
    return JSONResponse(body, status_code=status_code)


def _extension_for(content_type: str | None) -> str:
    """Derive a file extension from a content type (``image/jpeg`` -> ``jpeg``)."""
    if not content_type or "/" not in content_type:
        return "png"
    subtype = content_type.split(";", 1)[0].split("/", 1)[1].strip()
    subtype = subtype.split("+", 1)[0]
    return subtype or "png"


def _is_safe_media_path(path: str) -> bool:
    return ".." not in path.split("/") and "\\" not in path


def _is_numeric_id(value: str) -> bool:
    return value.isascii() and value.isdigit()


# ---------------------------------------------------------------------------
# Page and configuration.
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    """Serve the main application HTML page.

    Raises:
        HTTPException: 404 if ``index.html`` is not found.
    """
    index_path = _config(request).templates_dir / "index.html"
    if index_path.exists():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    raise HTTPException(status_code=404, detail="index.html not found")


@router.get("/api/config")
async def get_config(request: Request) -> dict:
    """Return the settings the frontend needs on page load.

    Returns:
        Dictionary with ``version``, ``table_id``, ``refresh_interval``
        (seconds), ``categories`` (existing table categories, used as form
        suggestions) and ``token_configured``.
    """
    cfg = _config(request)
    return {
        "version": __version__,
        "table_id": cfg.images_table_id,
        "refresh_interval": cfg.refresh_interval,
        "categories": _gallery(request).existing_categories(),
        "token_configured": bool(cfg.baserow_api_token),
    }


# ---------------------------------------------------------------------------
# Baserow proxy.
# ---------------------------------------------------------------------------


@router.get("/api/baserow")
async def proxy_list_rows(
    request: Request,
    table_id: str | None = Query(default=None, alias="tableId"),
    page: int = Query(default=1, ge=1),
    size: int | None = Query(default=None, ge=1, le=200),
) -> Response:
    """Forward a row listing to Baserow and return its JSON unchanged.

    Missing ``tableId`` falls back to the configured gallery table.  Any
    failure is reported as 500 with a generic message; the upstream details
    are only logged.  A non-numeric ``tableId`` is rejected with 400.
    """
    if table_id and not _is_numeric_id(table_id):
        return _error("Invalid table ID", 400)

    cfg = _config(request)
    try:
        data = await _baserow(request).list_rows(
            table_id or cfg.images_table_id,
            page=page,
            size=size or cfg.page_size,
        )
    except BaserowError as e:
        logger.error(f"Proxy error: {e.message} {e.details}".strip())
        return _error("Failed to fetch data from Baserow", 500)
    return JSONResponse(data)


@router.delete("/api/baserow")
async def proxy_delete_row(
    request: Request,
    table_id: str | None = Query(default=None, alias="tableId"),
    row_id: str | None = Query(default=None, alias="rowId"),
) -> Response:
    """Forward a row delete to Baserow.

    Returns:
        204 with an empty body on success.  Upstream errors keep their status
        and carry ``error`` and ``details``; transport failures return 500.
    """
    if not table_id or not row_id:
        logger.error("Missing required parameters for row delete")
        return _error("Table ID and Row ID are required", 400)
    if not (_is_numeric_id(table_id) and _is_numeric_id(row_id)):
        logger.error(f"Rejected row delete with non-numeric ids: {table_id!r}, {row_id!r}")
        return _error("Table ID and Row ID must be numeric", 400)

    try:
        await _baserow(request).delete_row(table_id, row_id)
    except BaserowError as e:
        if e.upstream:
            return JSONResponse(e.to_dict(), status_code=e.status_code)
        logger.error(f"Delete error: {e.details}", exc_info=True)
        return _error("Failed to delete row from Baserow", 500, e.details or e.message)

    logger.info(f"Deleted row {row_id} from table {table_id}")
    return Response(status_code=204)


@router.get("/api/baserow/media")
async def proxy_media(request: Request, path: str | None = None) -> Response:
    """Stream a Baserow media file through the same origin.

    The browser cannot reach Baserow's internal media address, so every
    image URL in the gallery points here (see
    :func:`~promptgallery.core.fields.transform_image_url`).
    """
    if not path:
        return _error("No path provided", 400)
    if not _is_safe_media_path(path):
        return _error("Invalid media path", 400)

    try:
        content, content_type = await _baserow(request).fetch_media(path)
    except BaserowError as e:
        logger.error(f"Media proxy error: {e.message}")
        return _error("Failed to fetch media", 500)

    return Response(
        content=content,
        media_type=content_type or "image/png",
        headers={"Cache-Control": f"public, max-age={_config(request).media_cache_max_age}"},
    )


@router.post("/api/download")
async def download_image(request: Request, req: DownloadRequest) -> Response:
    """Return an image as a file attachment.

    Media proxy URLs (``/api/baserow/media?path=...``) are resolved against
    Baserow directly; other URLs must be absolute http(s) URLs.
    """
    parts = urlsplit(req.image_url)
    is_media_proxy = not parts.netloc and parts.path == MEDIA_PROXY_PATH
    if not is_media_proxy and parts.scheme not in ("http", "https"):
        return _error("Unsupported image URL", 400)

    try:
        if is_media_proxy:
            path = parse_qs(parts.query).get("path", [""])[0]
            if not path or not _is_safe_media_path(path):
                return _error("Unsupported image URL", 400)
            content, content_type = await _baserow(request).fetch_media(path)
        else:
            response = await request.app.state.http.get(req.image_url)
            response.raise_for_status()
            content = response.content
            content_type = response.headers.get("content-type")
    except (BaserowError, httpx.HTTPError) as e:
        logger.error(f"Download error: {e}")
        return _error("Failed to download image", 500)

    filename = f"generated-image-{int(time.time() * 1000)}.{_extension_for(content_type)}"
    return Response(
        content=content,
        media_type=content_type or "image/png",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/api/test")
async def test_route() -> dict:
    """Routing diagnostic."""
    return {"message": "Test route working"}


@router.delete("/api/test")
async def test_delete_route(request: Request) -> dict:
    """Routing diagnostic that echoes the query parameters."""
    return {"message": "Delete route working", "params": dict(request.query_params)}


# ---------------------------------------------------------------------------
# Generation.
# ---------------------------------------------------------------------------


@router.post("/api/generate", response_model=GenerateResponse)
async def generate_image(request: Request, req: GenerationRequest) -> GenerateResponse:
    """Trigger the generation webhook and record the result.

    This endpoint:

    1. Rejects blank prompts and overlapping generations.
    2. Marks the gallery as generating, which starts the refresh poll.
    3. Calls the webhook and waits for its answer.
    4. Probes the returned image URL until it is reachable.
    5. Records a transient gallery entry and schedules follow-up refreshes.

    Returns:
        :class:`GenerateResponse` with ``status="success"`` when the image
        was reachable, or ``status="pending"`` when the retry budget ran out.

    Raises:
        HTTPException: 400 for a blank prompt, 409 while another generation
            is running, 502 when the webhook fails.
    """
    if not req.has_prompt():
        raise HTTPException(status_code=400, detail="prompt is required")

    gallery = _gallery(request)
    if gallery.is_generating:
        raise HTTPException(status_code=409, detail="A generation is already in progress")

    cfg = _config(request)
    gallery.start_generating()
    try:
        result = await request.app.state.webhook.trigger(req)
        ready = await wait_until_ready(
            request.app.state.http,
            result.image_url,
            max_attempts=cfg.readiness_max_attempts,
            interval=cfg.readiness_interval,
            initial_delay=cfg.readiness_initial_delay,
        )
        if not ready:
            gallery.schedule_burst_refreshes()
            return GenerateResponse(
                status="pending",
                message="Image generated but may take a moment to be available",
            )

        image = await gallery.add_generated(req, result.image_url)
        return GenerateResponse(
            status="success",
            message="Image generation successful",
            image=image,
        )
    except WebhookError as e:
        logger.error(f"Generation failed: {e.message} {e.details}".strip())
        raise HTTPException(status_code=502, detail="Failed to generate image") from e
    finally:
        gallery.stop_generating()


# ---------------------------------------------------------------------------
# Gallery.
# ---------------------------------------------------------------------------


@router.get("/api/gallery", response_model=GalleryListing)
async def get_gallery(
    request: Request,
    category: str = "all",
    sort: Literal["newest", "oldest"] = "newest",
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=100, ge=1, le=500),
    refresh: bool = False,
) -> GalleryListing:
    """Return the merged gallery listing.

    Transient records and table rows are merged, filtered by category and
    sorted, then paginated.  ``categories`` is computed before filtering so
    the selector always lists every category.

    With ``refresh=true`` the table is re-read first (page load, filter
    changes).  Without it the current snapshot is returned, which the poll
    loop keeps fresh while a generation is pending.
    """
    gallery = _gallery(request)
    if refresh:
        await gallery.refresh()
    images = gallery.all_images()

    entries = sort_gallery_entries(filter_gallery_entries(images, category), sort)
    listing = paginate_gallery_entries(entries, page, per_page)

    return GalleryListing(
        **listing,
        category=category,
        sort=sort,
        categories=collect_categories(images),
        is_generating=gallery.is_generating,
        error=gallery.error,
    )


@router.get("/api/gallery/{image_id}", response_model=GalleryImage)
async def get_gallery_image(request: Request, image_id: str) -> GalleryImage:
    """Return a single gallery record.

    Raises:
        HTTPException: 404 if the image is not found.
    """
    image = _gallery(request).find(image_id)
    if image is None:
        raise HTTPException(status_code=404, detail="Image not found")
    return image


@router.delete("/api/gallery/{image_id}")
async def delete_gallery_image(request: Request, image_id: str) -> dict:
    """Delete a gallery image.

    Table rows are deleted in Baserow; transient records are dropped.

    Returns:
        Dictionary with ``success`` and ``deleted`` keys.

    Raises:
        HTTPException: 404 if the image is not found, the Baserow status (or
            500) if the delete fails.
    """
    try:
        await _gallery(request).delete(image_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Image not found")
    except BaserowError as e:
        logger.error(f"Error deleting image {image_id}: {e.message}")
        raise HTTPException(
            status_code=e.status_code if e.upstream else 500,
            detail="Failed to delete image. Please try again.",
        ) from e

    return {"success": True, "deleted": image_id}


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from
    :data:`~promptgallery.core.config.config` (``PROMPTGALLERY_SERVER_HOST``,
    ``PROMPTGALLERY_SERVER_PORT``, ``PROMPTGALLERY_LOG_LEVEL``).  Defaults to
    ``0.0.0.0:3000``.

    This function is registered as the ``promptgallery`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(
        "promptgallery.api.main:app",
        host=config.server_host,
        port=config.server_port,
        log_level=config.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
