"""Argument parsing and persistence helpers shared by the milestone tools."""

from __future__ import annotations

import uuid
from datetime import date

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import StoreError, ValidationError

logger = structlog.get_logger()


def parse_uuid(value: str | uuid.UUID, field: str) -> uuid.UUID:
    """Parse a UUID argument, raising ValidationError on bad input."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError):
        raise ValidationError(f"Invalid {field}: {value!r}") from None


def parse_date(value: str | date | None, field: str = "due_date") -> date | None:
    """Parse an ISO ``YYYY-MM-DD`` date; None and empty strings mean no date."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r} (expected YYYY-MM-DD)") from None


def require_title(title: str | None) -> str:
    if title is None or not str(title).strip():
        raise ValidationError("Title is required")
    return str(title).strip()


def check_hours(value: float | None, field: str) -> float | None:
    if value is None:
        return None
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}") from None
    if hours < 0:
        raise ValidationError(f"{field} cannot be negative")
    return hours


async def commit_or_raise(session: AsyncSession, action: str, **context) -> None:
    """Commit the session, turning driver failures into StoreError.

    The session context manager rolls back on the way out, so nothing from a
    failed commit is persisted.
    """
    try:
        await session.commit()
    except SQLAlchemyError as e:
        logger.error("store_write_failed", action=action, error=str(e), **context)
        raise StoreError(f"Failed to {action}: {e}") from e
