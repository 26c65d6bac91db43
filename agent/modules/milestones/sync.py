"""Best-effort notifier for the booking-level progress recalculation service.

Each successful milestone recompute calls :meth:`BookingProgressSync.notify`,
which schedules the HTTP call in the background and returns immediately.
Failures are logged and dropped; nothing is retried.
"""

from __future__ import annotations

import asyncio
import uuid

import httpx
import structlog

from shared.auth import get_service_auth_headers
from shared.config import get_settings
from shared.errors import SyncError

logger = structlog.get_logger()

# Strong references to in-flight sync calls so they are not garbage
# collected before they finish.
_background_tasks: set[asyncio.Task] = set()


class BookingProgressSync:
    """POSTs ``{base_url}/{booking_id}`` after milestone progress changes."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        settings = get_settings()
        self.base_url = (settings.booking_progress_url if base_url is None else base_url).rstrip("/")
        self.timeout = settings.booking_progress_timeout if timeout is None else timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def notify(self, booking_id: uuid.UUID | str) -> asyncio.Task | None:
        """Schedule a sync for ``booking_id`` without waiting for it.

        Returns the background task (mainly for tests), or None when the sync
        is disabled.
        """
        if not self.enabled:
            return None
        task = asyncio.create_task(self._run(str(booking_id)))
        _background_tasks.add(task)
        task.add_done_callback(_background_tasks.discard)
        return task

    async def _run(self, booking_id: str) -> None:
        try:
            await self.post(booking_id)
        except SyncError as e:
            logger.warning("booking_progress_sync_failed", booking_id=booking_id, error=str(e))
        except Exception as e:
            # Nothing awaits this task, so anything left unhandled would be lost
            logger.error(
                "booking_progress_sync_failed",
                booking_id=booking_id,
                error=str(e),
                exc_info=True,
            )

    async def post(self, booking_id: str) -> None:
        """Send one recalculation request.

        Raises:
            SyncError: On a transport failure or a non-2xx response.
        """
        url = f"{self.base_url}/{booking_id}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, headers=get_service_auth_headers())
                resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SyncError(
                f"Booking progress endpoint returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SyncError(f"Booking progress request failed: {e}") from e

        logger.debug("booking_progress_synced", booking_id=booking_id)
