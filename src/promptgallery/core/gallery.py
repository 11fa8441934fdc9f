"""Gallery state container.

:class:`GalleryState` keeps the last snapshot of the Baserow table plus the
transient records created right after a successful generation, and decides
when to re-poll the table:

- once on startup and after every delete,
- immediately after a new image arrives, then again after each of the
  configured burst delays (the workflow writes the row a little after it
  answers the webhook),
- every ``refresh_interval`` seconds while a generation is pending.

All timers are asyncio tasks owned by the state; :meth:`GalleryState.close`
cancels whatever is still scheduled.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from pydantic import ValidationError

from promptgallery.core.baserow import BaserowClient
from promptgallery.core.errors import BaserowError
from promptgallery.core.fields import to_gallery_image
from promptgallery.core.models import GalleryImage, GenerationRequest

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"
LOCAL_ID_PREFIX = "local-"
FETCH_ERROR = "Failed to fetch images"


def is_local_id(image_id: str) -> bool:
    """Return ``True`` for ids of transient (not yet stored) records."""
    return image_id.startswith(LOCAL_ID_PREFIX)


def new_local_id() -> str:
    """Build a transient record id: creation time in ms plus a random suffix."""
    return f"{LOCAL_ID_PREFIX}{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class GalleryState:
    """Hold the gallery records and drive the refresh timers.

    Args:
        baserow: Client used to read and delete rows.
        table_id: Gallery table.
        page_size: Rows fetched per refresh.
        refresh_interval: Poll period while a generation is pending.
        burst_delays: One-shot refresh delays after a new image.
    """

    def __init__(
        self,
        baserow: BaserowClient,
        table_id: int,
        *,
        page_size: int = 100,
        refresh_interval: float = 2.0,
        burst_delays: Iterable[float] = (2.0, 4.0, 6.0),
    ):
        self._baserow = baserow
        self.table_id = table_id
        self.page_size = page_size
        self.refresh_interval = refresh_interval
        self.burst_delays = list(burst_delays)

        self.remote: list[GalleryImage] = []
        self.generated: list[GalleryImage] = []
        self.is_generating = False
        self.is_loading = False
        self.error: str | None = None
        self.version = 0

        self._refresh_lock = asyncio.Lock()
        self._poll_task: asyncio.Task | None = None
        self._scheduled: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def all_images(self) -> list[GalleryImage]:
        """Transient records first, then the table rows."""
        return [*self.generated, *self.remote]

    def find(self, image_id: str) -> GalleryImage | None:
        return next((image for image in self.all_images() if image.id == image_id), None)

    def existing_categories(self) -> list[str]:
        """Distinct non-blank categories of the stored rows, in first-seen order."""
        seen: dict[str, None] = {}
        for image in self.remote:
            category = image.category.strip()
            if category:
                seen.setdefault(category, None)
        return list(seen)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> bool:
        """Re-read the table.

        Failures are logged and recorded in :attr:`error`; the previous
        snapshot is kept.

        Returns:
            ``True`` when the snapshot was replaced.
        """
        async with self._refresh_lock:
            self.is_loading = True
            try:
                rows = await self._baserow.fetch_rows(self.table_id, size=self.page_size)
            except BaserowError as e:
                self.error = FETCH_ERROR
                logger.error(f"Error loading images: {e.message} {e.details}".strip())
                return False
            except ValidationError as e:
                self.error = FETCH_ERROR
                logger.error(f"Error loading images: invalid row data: {e}")
                return False
            finally:
                self.is_loading = False

            self.remote = [to_gallery_image(row) for row in rows]

            # A transient record is dropped once its row shows up in the table.
            landed = {image.source_url for image in self.remote if image.source_url}
            self.generated = [image for image in self.generated if image.image_url not in landed]

            self.error = None
            self.version += 1
            logger.debug(f"Gallery refreshed (version {self.version}, {len(self.remote)} rows)")
            return True

    async def _refresh_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await self.refresh()

    def _schedule(self, delay: float) -> asyncio.Task:
        task = asyncio.create_task(self._refresh_after(delay))
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled.discard)
        return task

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            await self.refresh()

    # ------------------------------------------------------------------
    # Generation lifecycle
    # ------------------------------------------------------------------

    def start_generating(self) -> None:
        """Mark a generation as pending and start the poll loop."""
        self.is_generating = True
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll())
            logger.debug(f"Started gallery polling every {self.refresh_interval}s")

    def stop_generating(self) -> None:
        """Clear the pending flag and stop the poll loop."""
        self.is_generating = False
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
            logger.debug("Stopped gallery polling")

    async def add_generated(self, request: GenerationRequest, image_url: str) -> GalleryImage:
        """Record a freshly generated image and schedule follow-up refreshes.

        Args:
            request: The submitted form.
            image_url: URL returned by the webhook.

        Returns:
            The transient gallery record.
        """
        image = GalleryImage(
            id=new_local_id(),
            image_url=image_url,
            prompt=request.prompt,
            category=request.category or UNCATEGORIZED,
            created_at=datetime.now(timezone.utc).isoformat(),
            is_local=True,
        )
        self.generated.insert(0, image)
        logger.info(f"Recorded generated image {image.id}: {image_url}")

        await self.refresh()
        self.schedule_burst_refreshes()
        return image

    def schedule_burst_refreshes(self) -> list[asyncio.Task]:
        """Schedule one refresh after each configured burst delay."""
        return [self._schedule(delay) for delay in self.burst_delays]

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete(self, image_id: str) -> None:
        """Delete an image.

        Table rows are deleted in Baserow first; transient records only
        exist here and are simply dropped.

        Raises:
            KeyError: If no record has this id.
            BaserowError: If Baserow rejects the delete.
        """
        image = self.find(image_id)
        if image is None:
            raise KeyError(image_id)

        if is_local_id(image_id):
            self.generated = [g for g in self.generated if g.id != image_id]
            logger.info(f"Dropped transient image {image_id}")
            return

        await self._baserow.delete_row(self.table_id, image_id)
        self.remote = [r for r in self.remote if r.id != image_id]
        self.generated = [g for g in self.generated if g.id != image_id]
        await self.refresh()

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel the poll loop and every scheduled refresh."""
        self.stop_generating()
        pending = list(self._scheduled)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._scheduled.clear()
