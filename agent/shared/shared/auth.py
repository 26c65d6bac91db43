"""Inter-service authentication and actor identity.

Every internal service shares a single ``SERVICE_AUTH_TOKEN``.  Requests
between services must include ``Authorization: Bearer <token>`` on
protected endpoints.

Usage in a module FastAPI app::

    from shared.auth import require_service_auth

    @app.post("/execute")
    async def execute(call: ToolCall, _=Depends(require_service_auth)):
        ...

The acting user is never read from ambient session state.  Callers build an
:class:`Actor` with :func:`resolve_actor` and pass it explicitly into every
mutating call.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from fastapi import HTTPException, Request

from shared.config import get_settings
from shared.errors import AuthError

logger = structlog.get_logger()

ROLES = ("client", "provider", "admin")


@dataclass(frozen=True)
class Actor:
    """The user performing a write, recorded in ``created_by``/``approved_by``."""

    user_id: uuid.UUID
    role: str

    @property
    def is_client(self) -> bool:
        return self.role == "client"


def resolve_actor(user_id: str | None, role: str | None) -> Actor:
    """Build an Actor from the identity supplied with a request.

    Raises:
        AuthError: If the id is missing or not a UUID, or the role is unknown.
            Writes must abort rather than record a null actor.
    """
    if not user_id:
        raise AuthError("Unable to resolve acting user: user_id is required")
    try:
        uid = uuid.UUID(str(user_id))
    except (ValueError, AttributeError):
        raise AuthError(f"Unable to resolve acting user: invalid user_id {user_id!r}") from None
    if role not in ROLES:
        raise AuthError(f"Unable to resolve acting user: unknown role {role!r}")
    return Actor(user_id=uid, role=role)


def require_role(actor: Actor, *roles: str) -> None:
    """Raise AuthError unless ``actor`` holds one of ``roles``."""
    if actor.role not in roles:
        raise AuthError(
            f"Role '{actor.role}' is not permitted for this action (requires {' or '.join(roles)})"
        )


def get_service_auth_headers() -> dict[str, str]:
    """Return HTTP headers for inter-service calls.

    Returns an empty dict when no token is configured (dev mode).
    """
    settings = get_settings()
    token = settings.service_auth_token
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


async def require_service_auth(request: Request) -> None:
    """FastAPI dependency that validates the inter-service auth token.

    Raises 401 if the token is missing or incorrect.
    Skips validation when ``service_auth_token`` is empty (dev mode).
    """
    settings = get_settings()
    expected = settings.service_auth_token
    if not expected:
        logger.warning(
            "service_auth_disabled",
            path=request.url.path,
            hint="Set SERVICE_AUTH_TOKEN in .env for production",
        )
        return

    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing service auth token")

    token = auth_header[7:]  # strip "Bearer "
    if token != expected:
        logger.warning(
            "service_auth_failed",
            path=request.url.path,
            remote=request.client.host if request.client else "unknown",
        )
        raise HTTPException(status_code=401, detail="Invalid service auth token")
