"""JWT authentication and the explicit ``Actor`` passed to state-changing calls.

Tokens are issued by the external identity provider; this module only
validates them and maps the claims onto an :class:`Actor`.
"""

import logging
import uuid
from dataclasses import dataclass, field

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from fleetflow.config import settings
from fleetflow.exceptions import ForbiddenException, UnauthorizedException

logger = logging.getLogger(__name__)

ROLE_SYSTEM_ADMIN = "system_admin"
ROLE_WAREHOUSE_OFFICER = "warehouse_officer"
ROLE_ZONAL_MANAGER = "zonal_manager"
ROLE_FACILITY_INCHARGE = "facility_incharge"
ROLE_DRIVER = "driver"

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation."""

    id: uuid.UUID
    email: str | None = None
    roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return ROLE_SYSTEM_ADMIN in self.roles

    def has_any_role(self, *roles: str) -> bool:
        return self.is_admin or bool(self.roles.intersection(roles))


def require_role(actor: Actor, *roles: str) -> None:
    """Raise ForbiddenException unless the actor holds one of ``roles`` (admins always pass)."""
    if not actor.has_any_role(*roles):
        raise ForbiddenException(
            f"Requires one of the roles: {', '.join(roles)}",
            details=[{"required": list(roles), "actual": sorted(actor.roles)}],
        )


def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


def actor_from_claims(payload: dict) -> Actor:
    """Build an Actor from token claims; ``roles`` may be a list or a single ``role``."""
    roles = payload.get("roles")
    if roles is None:
        roles = [payload["role"]] if payload.get("role") else []
    try:
        return Actor(
            id=uuid.UUID(payload["sub"]),
            email=payload.get("email"),
            roles=frozenset(roles),
        )
    except (KeyError, ValueError, TypeError) as exc:
        raise UnauthorizedException("Token is missing required claims") from exc


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Actor:
    """FastAPI dependency resolving the Bearer token to an Actor."""
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    actor = actor_from_claims(_decode_token(credentials.credentials))
    request.state.actor = actor
    return actor
