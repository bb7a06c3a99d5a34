"""Tests for JWT validation, claim mapping and role checks."""

import uuid
from types import SimpleNamespace

import pytest
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from fleetflow.config import settings
from fleetflow.exceptions import ForbiddenException, UnauthorizedException
from fleetflow.modules.auth.auth import (
    ROLE_DRIVER,
    ROLE_WAREHOUSE_OFFICER,
    ROLE_ZONAL_MANAGER,
    Actor,
    _decode_token,
    actor_from_claims,
    get_current_actor,
    require_role,
)


def _token(claims: dict, secret: str | None = None) -> str:
    return jwt.encode(
        claims, secret or settings.jwt_secret_key, algorithm=settings.jwt_algorithm
    )


class TestActorFromClaims:
    def test_roles_list(self):
        user_id = uuid.uuid4()

        actor = actor_from_claims({
            "sub": str(user_id),
            "email": "officer@example.org",
            "roles": [ROLE_WAREHOUSE_OFFICER, ROLE_ZONAL_MANAGER],
        })

        assert actor.id == user_id
        assert actor.email == "officer@example.org"
        assert actor.roles == frozenset({ROLE_WAREHOUSE_OFFICER, ROLE_ZONAL_MANAGER})

    def test_single_role_claim(self):
        actor = actor_from_claims({"sub": str(uuid.uuid4()), "role": ROLE_DRIVER})
        assert actor.roles == frozenset({ROLE_DRIVER})

    def test_no_roles(self):
        actor = actor_from_claims({"sub": str(uuid.uuid4())})
        assert actor.roles == frozenset()

    @pytest.mark.parametrize("claims", [{}, {"sub": "not-a-uuid"}, {"sub": None}])
    def test_bad_subject(self, claims):
        with pytest.raises(UnauthorizedException):
            actor_from_claims(claims)


class TestDecodeToken:
    def test_round_trip(self):
        user_id = str(uuid.uuid4())
        assert _decode_token(_token({"sub": user_id}))["sub"] == user_id

    def test_wrong_secret_is_rejected(self):
        with pytest.raises(UnauthorizedException):
            _decode_token(_token({"sub": str(uuid.uuid4())}, secret="someone-else"))

    def test_garbage_is_rejected(self):
        with pytest.raises(UnauthorizedException):
            _decode_token("not.a.jwt")


class TestGetCurrentActor:
    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        with pytest.raises(UnauthorizedException):
            await get_current_actor(SimpleNamespace(state=SimpleNamespace()), None)

    @pytest.mark.asyncio
    async def test_bearer_token_sets_request_actor(self):
        user_id = uuid.uuid4()
        request = SimpleNamespace(state=SimpleNamespace())
        credentials = HTTPAuthorizationCredentials(
            scheme="Bearer", credentials=_token({"sub": str(user_id), "role": ROLE_DRIVER})
        )

        actor = await get_current_actor(request, credentials)

        assert actor.id == user_id
        assert request.state.actor is actor


class TestRequireRole:
    def test_matching_role_passes(self):
        require_role(Actor(id=uuid.uuid4(), roles=frozenset({ROLE_DRIVER})), ROLE_DRIVER)

    def test_missing_role_is_forbidden(self):
        actor = Actor(id=uuid.uuid4(), roles=frozenset({ROLE_DRIVER}))
        with pytest.raises(ForbiddenException) as exc_info:
            require_role(actor, ROLE_WAREHOUSE_OFFICER, ROLE_ZONAL_MANAGER)
        assert exc_info.value.details[0]["actual"] == [ROLE_DRIVER]

    def test_admin_passes_every_check(self, admin):
        assert admin.is_admin
        require_role(admin, ROLE_WAREHOUSE_OFFICER)
