"""Typed failures shared by the milestone tracker services.

Every error carries a stable ``code`` so the HTTP layer can report it in
``ToolResult.error_code`` without string matching::

    try:
        await tools.update_task(...)
    except TrackerError as e:
        return ToolResult(tool_name=..., success=False, error=str(e), error_code=e.code)
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for expected, caller-visible failures."""

    code = "tracker_error"


class ValidationError(TrackerError):
    """Input rejected before any write (missing field, workflow precondition)."""

    code = "validation_error"


class NotFoundError(TrackerError):
    """Referenced milestone or task no longer exists; callers should reload."""

    code = "not_found"


class StoreError(TrackerError):
    """The underlying persistence write failed. Transient."""

    code = "store_error"


class SyncError(TrackerError):
    """Booking progress sync failed. Logged, never surfaced to callers."""

    code = "sync_error"


class AuthError(TrackerError):
    """The acting user could not be resolved."""

    code = "auth_error"
