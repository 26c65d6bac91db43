"""Tests for actor resolution and role checks."""

from __future__ import annotations

import uuid

import pytest

from shared.auth import Actor, require_role, resolve_actor
from shared.errors import AuthError


class TestResolveActor:
    def test_resolves_valid_identity(self):
        uid = uuid.uuid4()
        actor = resolve_actor(str(uid), "client")
        assert actor == Actor(user_id=uid, role="client")
        assert actor.is_client

    @pytest.mark.parametrize("user_id,role", [
        (None, "provider"),
        ("", "provider"),
        ("not-a-uuid", "provider"),
        (str(uuid.uuid4()), None),
        (str(uuid.uuid4()), "owner"),
    ])
    def test_unresolvable_identity(self, user_id, role):
        with pytest.raises(AuthError) as exc_info:
            resolve_actor(user_id, role)
        assert exc_info.value.code == "auth_error"


class TestRequireRole:
    def test_allowed(self):
        require_role(Actor(uuid.uuid4(), "admin"), "provider", "admin")

    def test_denied(self):
        with pytest.raises(AuthError, match="client"):
            require_role(Actor(uuid.uuid4(), "client"), "provider", "admin")
