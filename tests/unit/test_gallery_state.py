"""Tests for promptgallery.core.gallery - gallery state and refresh timers."""

from __future__ import annotations

import asyncio

import pytest

from promptgallery.core.errors import BaserowError
from promptgallery.core.gallery import (
    FETCH_ERROR,
    UNCATEGORIZED,
    GalleryState,
    is_local_id,
    new_local_id,
)
from promptgallery.core.models import GenerationRequest
from tests.conftest import BASEROW_URL, TABLE_ID, make_row


@pytest.fixture
def state(baserow_client) -> GalleryState:
    return GalleryState(baserow_client, TABLE_ID, refresh_interval=60, burst_delays=[])


def _gets(fake_backend) -> int:
    return len(fake_backend.requests_to("baserow.test", "GET"))


class TestLocalIds:
    """Test transient id helpers."""

    def test_new_local_id_shape(self):
        image_id = new_local_id()
        prefix, millis, suffix = image_id.split("-")
        assert prefix == "local"
        assert millis.isdigit()
        assert len(suffix) == 7

    def test_ids_are_unique(self):
        assert len({new_local_id() for _ in range(50)}) == 50

    def test_is_local_id(self):
        assert is_local_id("local-1-abc") is True
        assert is_local_id("12") is False


class TestRefresh:
    """Test re-reading the table."""

    @pytest.mark.asyncio
    async def test_refresh_loads_rows(self, state, sample_rows):
        assert await state.refresh() is True
        assert [image.id for image in state.remote] == ["1", "2", "3", "4"]
        assert state.version == 1
        assert state.error is None
        assert state.is_loading is False

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_snapshot(self, state, fake_backend, sample_rows):
        await state.refresh()
        fake_backend.list_status = 500

        assert await state.refresh() is False
        assert state.error == FETCH_ERROR
        assert len(state.remote) == 4
        assert state.version == 1

    @pytest.mark.asyncio
    async def test_error_cleared_after_success(self, state, fake_backend):
        fake_backend.unreachable_hosts.add("baserow.test")
        await state.refresh()
        assert state.error == FETCH_ERROR

        fake_backend.unreachable_hosts.clear()
        await state.refresh()
        assert state.error is None

    @pytest.mark.asyncio
    async def test_non_image_attachment_does_not_break_refresh(self, state, fake_backend):
        row = make_row(5, "Notes", "docs")
        row["field_6699"][0]["thumbnails"] = None
        row["field_6699"][0]["is_image"] = False
        fake_backend.rows.extend([make_row(1), row])

        assert await state.refresh() is True
        assert [image.id for image in state.remote] == ["1", "5"]
        assert state.error is None

    @pytest.mark.asyncio
    async def test_unexpected_payload_recorded_as_error(self, state, fake_backend, sample_rows):
        await state.refresh()
        fake_backend.list_body = [make_row(9)]

        assert await state.refresh() is False
        assert state.error == FETCH_ERROR
        assert len(state.remote) == 4

    @pytest.mark.asyncio
    async def test_existing_categories(self, state, sample_rows):
        await state.refresh()
        assert state.existing_categories() == ["landscape", "portrait"]


class TestAddGenerated:
    """Test transient records for fresh generations."""

    @pytest.mark.asyncio
    async def test_record_is_prepended(self, state, sample_rows):
        await state.refresh()
        image = await state.add_generated(
            GenerationRequest(prompt="A comet", category="space"), "http://img/comet.png"
        )

        assert image.is_local is True
        assert is_local_id(image.id)
        assert image.prompt == "A comet"
        assert image.category == "space"
        assert image.created_at
        assert state.all_images()[0] == image
        assert len(state.all_images()) == 5

    @pytest.mark.asyncio
    async def test_blank_category_defaults(self, state):
        image = await state.add_generated(GenerationRequest(prompt="x"), "http://img/x.png")
        assert image.category == UNCATEGORIZED

    @pytest.mark.asyncio
    async def test_triggers_immediate_refresh(self, state, fake_backend):
        await state.add_generated(GenerationRequest(prompt="x"), "http://img/x.png")
        assert _gets(fake_backend) == 1

    @pytest.mark.asyncio
    async def test_transient_dropped_once_row_lands(self, state, fake_backend):
        landed_url = f"{BASEROW_URL}/media/user_files/img_5.png"
        await state.add_generated(GenerationRequest(prompt="x"), landed_url)
        assert len(state.generated) == 1

        fake_backend.rows.append(make_row(5, "x"))
        await state.refresh()

        assert state.generated == []
        assert [image.id for image in state.all_images()] == ["5"]


class TestBurstRefreshes:
    """Test scheduled one-shot refreshes."""

    @pytest.mark.asyncio
    async def test_one_refresh_per_delay(self, baserow_client, fake_backend):
        state = GalleryState(baserow_client, TABLE_ID, burst_delays=[0, 0, 0])
        tasks = state.schedule_burst_refreshes()
        assert len(tasks) == 3

        await asyncio.gather(*tasks)
        assert _gets(fake_backend) == 3
        assert state.version == 3

    @pytest.mark.asyncio
    async def test_add_generated_schedules_bursts(self, baserow_client, fake_backend):
        state = GalleryState(baserow_client, TABLE_ID, burst_delays=[0, 0])
        await state.add_generated(GenerationRequest(prompt="x"), "http://img/x.png")
        assert len(state._scheduled) == 2

        await asyncio.gather(*list(state._scheduled))
        assert _gets(fake_backend) == 3

    @pytest.mark.asyncio
    async def test_close_cancels_pending(self, baserow_client, fake_backend):
        state = GalleryState(baserow_client, TABLE_ID, burst_delays=[30])
        (task,) = state.schedule_burst_refreshes()

        await state.close()

        assert task.cancelled()
        assert state._scheduled == set()
        assert _gets(fake_backend) == 0


class TestGeneratingPoll:
    """Test the poll loop tied to the generating flag."""

    @pytest.mark.asyncio
    async def test_poll_runs_while_generating(self, baserow_client, fake_backend):
        state = GalleryState(baserow_client, TABLE_ID, refresh_interval=0.01, burst_delays=[])
        state.start_generating()
        assert state.is_generating is True

        await asyncio.sleep(0.1)
        state.stop_generating()
        polled = _gets(fake_backend)

        assert polled >= 1
        assert state.is_generating is False
        await asyncio.sleep(0.05)
        assert _gets(fake_backend) == polled

    @pytest.mark.asyncio
    async def test_start_twice_keeps_single_loop(self, state):
        state.start_generating()
        first = state._poll_task
        state.start_generating()
        assert state._poll_task is first
        await state.close()
        assert state._poll_task is None


class TestDelete:
    """Test deleting gallery records."""

    @pytest.mark.asyncio
    async def test_unknown_id_raises_key_error(self, state):
        with pytest.raises(KeyError):
            await state.delete("404")

    @pytest.mark.asyncio
    async def test_delete_remote_row(self, state, fake_backend, sample_rows):
        await state.refresh()
        await state.delete("2")

        assert [row["id"] for row in fake_backend.rows] == [1, 3, 4]
        assert [image.id for image in state.remote] == ["1", "3", "4"]
        # One refresh on load, one after the delete.
        assert _gets(fake_backend) == 2

    @pytest.mark.asyncio
    async def test_delete_transient_record_stays_local(self, state, fake_backend):
        image = await state.add_generated(GenerationRequest(prompt="x"), "http://img/x.png")
        await state.delete(image.id)

        assert state.generated == []
        assert fake_backend.requests_to("baserow.test", "DELETE") == []

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_record(self, state, fake_backend, sample_rows):
        await state.refresh()
        fake_backend.delete_status = 403

        with pytest.raises(BaserowError) as exc_info:
            await state.delete("1")

        assert exc_info.value.status_code == 403
        assert state.find("1") is not None
