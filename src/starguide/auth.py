"""Identity types consumed by the deployment endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Protocol

from .errors import AuthError


class Role(str, Enum):
    """Roles recognised by the admin tooling."""

    ADMIN = "admin"
    CONTRIBUTOR = "contributor"
    USER = "user"


@dataclass(frozen=True)
class Actor:
    """An authenticated caller."""

    id: str
    role: Role = Role.USER
    email: str | None = None

    @property
    def display_name(self) -> str:
        return self.email or self.id


class IdentityProvider(Protocol):
    """Resolve a bearer token into an :class:`Actor`."""

    def authenticate(self, token: str) -> Actor:
        """Return the actor owning ``token``.

        Raises:
            AuthError: If the token is unknown or expired.
        """


class StaticTokenIdentityProvider:
    """Identity provider backed by a fixed token table."""

    def __init__(self, tokens: Mapping[str, Actor]) -> None:
        self._tokens = dict(tokens)

    def authenticate(self, token: str) -> Actor:
        try:
            return self._tokens[token]
        except KeyError as exc:
            raise AuthError("Invalid or expired token") from exc


def parse_bearer_token(header: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer`` header value."""

    if not header or not header.startswith("Bearer "):
        raise AuthError("Missing or invalid Authorization header")
    token = header[len("Bearer ") :].strip()
    if not token:
        raise AuthError("Missing or invalid Authorization header")
    return token


def require_role(actor: Actor, *roles: Role) -> Actor:
    """Return ``actor`` if it holds one of ``roles``."""

    if actor.role not in roles:
        names = " or ".join(role.value for role in roles)
        raise AuthError(
            f"Access denied: {names} role required",
            forbidden=True,
        )
    return actor


__all__ = [
    "Actor",
    "IdentityProvider",
    "Role",
    "StaticTokenIdentityProvider",
    "parse_bearer_token",
    "require_role",
]
