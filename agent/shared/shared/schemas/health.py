"""Health check schema for the milestones service."""

from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Liveness response.

    ``booking_sync`` reports whether milestone recomputes notify the booking
    progress endpoint; it is False when ``BOOKING_PROGRESS_URL`` is unset.
    """

    status: str = "ok"
    service: str
    booking_sync: bool = False
