"""Shared pytest fixtures for Prompt Gallery tests."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from promptgallery.api.main import create_app
from promptgallery.core.baserow import BaserowClient
from promptgallery.core.config import GalleryConfig

BASEROW_URL = "http://baserow.test"
WEBHOOK_URL = "http://workflow.test/webhook/image-gen-trigger"
GENERATED_IMAGE_URL = "http://images.test/output/new-image.png"
TABLE_ID = 693


def make_row(
    row_id: int,
    prompt: str = "A lighthouse at dusk",
    category: str = "landscape",
    image_path: str | None = None,
) -> dict:
    """Build a Baserow row payload using the default column ids."""
    path = image_path or f"user_files/img_{row_id}.png"
    media_url = f"{BASEROW_URL}/media/{path}"
    return {
        "id": row_id,
        "order": f"{row_id}.00000000000000000000",
        "field_6699": [
            {
                "url": media_url,
                "thumbnails": {
                    "tiny": {
                        "url": f"{BASEROW_URL}/media/thumbnails/tiny/img_{row_id}.png",
                        "width": None,
                        "height": 21,
                    },
                    "small": {
                        "url": f"{BASEROW_URL}/media/thumbnails/small/img_{row_id}.png",
                        "width": 48,
                        "height": 48,
                    },
                },
                "name": f"img_{row_id}.png",
                "size": 1024,
                "mime_type": "image/png",
                "is_image": True,
                "image_width": 1024,
                "image_height": 1024,
                "uploaded_at": "2025-01-01T00:00:00+00:00",
            }
        ],
        "field_6700": prompt,
        "field_6701": f"Agent: {prompt}",
        "field_6702": category,
        "field_6703": "2025-01-01T00:00:00Z",
        "field_6704": "42",
        "field_6705": media_url,
    }


class FakeBackend:
    """In-memory stand-in for Baserow, the webhook and the image host.

    Every outbound request of the application goes through :meth:`handler`
    (wired in as an ``httpx.MockTransport``), so tests can inspect
    :attr:`requests` and steer responses through the public attributes.
    """

    def __init__(self) -> None:
        self.rows: list[dict] = []
        self.requests: list[httpx.Request] = []
        self.list_status = 200
        self.list_body: object | None = None
        self.delete_status: int | None = None
        self.media: dict[str, tuple[bytes, str | None]] = {
            "user_files/img_1.png": (b"\x89PNG-one", "image/png"),
        }
        self.webhook_status = 200
        self.webhook_body: object = [{"Status": "Success", "Image": GENERATED_IMAGE_URL}]
        self.image_statuses: list[int] = []
        self.unreachable_hosts: set[str] = set()
        # Row appended to the table the first time the image is probed,
        # mimicking the workflow writing its result.
        self.row_on_ready: dict | None = None

    def requests_to(self, host: str, method: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.url.host == host and (method is None or r.method == method)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host

        if host in self.unreachable_hosts:
            raise httpx.ConnectError("connection refused", request=request)
        if host == "baserow.test":
            return self._baserow(request)
        if host == "workflow.test":
            if self.webhook_status != 200:
                return httpx.Response(self.webhook_status, text="workflow exploded")
            return httpx.Response(200, json=self.webhook_body)
        if host == "images.test":
            return self._image(request)
        return httpx.Response(404, text="unknown host")

    def _baserow(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if path.startswith("/media/"):
            media = self.media.get(path[len("/media/"):])
            if media is None:
                return httpx.Response(404, text="Not Found")
            content, content_type = media
            headers = {"content-type": content_type} if content_type else {}
            return httpx.Response(200, content=content, headers=headers)

        prefix = f"/api/database/rows/table/{TABLE_ID}/"
        if not path.startswith(prefix):
            return httpx.Response(404, json={"error": "ERROR_TABLE_DOES_NOT_EXIST"})

        if request.method == "GET":
            if self.list_status != 200:
                return httpx.Response(self.list_status, text="list failed")
            if self.list_body is not None:
                return httpx.Response(200, json=self.list_body)
            return httpx.Response(
                200,
                json={"count": len(self.rows), "next": None, "previous": None, "results": self.rows},
            )

        if request.method == "DELETE":
            if self.delete_status is not None:
                return httpx.Response(self.delete_status, json={"error": "ERROR_ROW_DOES_NOT_EXIST"})
            row_id = int(path[len(prefix):].strip("/"))
            before = len(self.rows)
            self.rows = [row for row in self.rows if row["id"] != row_id]
            if len(self.rows) == before:
                return httpx.Response(404, json={"error": "ERROR_ROW_DOES_NOT_EXIST"})
            return httpx.Response(204)

        return httpx.Response(405)

    def _image(self, request: httpx.Request) -> httpx.Response:
        status = self.image_statuses.pop(0) if self.image_statuses else 200
        if status == 200 and self.row_on_ready is not None:
            self.rows.append(self.row_on_ready)
            self.row_on_ready = None
        return httpx.Response(status, content=b"JPEGDATA", headers={"content-type": "image/jpeg"})


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config() -> GalleryConfig:
    """Create a test configuration pointing at the fake services.

    Readiness and refresh delays are zeroed or disabled so tests never sleep.

    Returns:
        GalleryConfig instance for testing
    """
    return GalleryConfig(
        _env_file=None,
        baserow_base_url=BASEROW_URL,
        baserow_api_token="test-token",
        images_table_id=TABLE_ID,
        webhook_url=WEBHOOK_URL,
        readiness_initial_delay=0,
        readiness_interval=0,
        readiness_max_attempts=3,
        refresh_interval=60,
        refresh_burst_delays=[],
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Create an empty fake backend."""
    return FakeBackend()


@pytest.fixture
def transport(fake_backend: FakeBackend) -> httpx.MockTransport:
    return httpx.MockTransport(fake_backend.handler)


@pytest.fixture
def sample_rows(fake_backend: FakeBackend) -> list[dict]:
    """Seed the fake table with four rows.

    Rows 1 and 3 are ``landscape``, row 2 is ``portrait`` and row 4 has no
    category.
    """
    rows = [
        make_row(1, "A lighthouse at dusk", "landscape"),
        make_row(2, "An old sailor", "portrait"),
        make_row(3, "Mountains in fog", "landscape"),
        make_row(4, "Abstract shapes", ""),
    ]
    fake_backend.rows.extend(rows)
    return rows


@pytest.fixture
def baserow_client(test_config: GalleryConfig, transport: httpx.MockTransport) -> BaserowClient:
    """Create a BaserowClient wired to the fake backend."""
    return BaserowClient.from_config(test_config, transport=transport)


@pytest.fixture
def test_client(
    test_config: GalleryConfig, transport: httpx.MockTransport
) -> Generator[TestClient, None, None]:
    """Create a TestClient for an app whose table starts empty."""
    app = create_app(test_config, transport=transport)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def seeded_client(
    sample_rows: list[dict], test_config: GalleryConfig, transport: httpx.MockTransport
) -> Generator[TestClient, None, None]:
    """Create a TestClient whose startup refresh loads :func:`sample_rows`."""
    app = create_app(test_config, transport=transport)
    with TestClient(app) as client:
        yield client
