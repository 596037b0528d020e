"""Configuration helpers for deploying the character edit service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .auth import Actor, Role
from .codec import DEFAULT_CHARACTER_DIR
from .errors import ConfigurationError
from .repository import DEFAULT_API_URL, DEFAULT_BRANCH, DEFAULT_TIMEOUT


def _normalise_path(value: str | None) -> Path | None:
    if value is None:
        return None

    trimmed = value.strip()
    if not trimmed:
        return None

    return Path(trimmed).expanduser()


def _normalise_string(value: str | None, *, default: str) -> str:
    if value is None:
        return default

    trimmed = value.strip()
    return trimmed or default


def _optional_string(value: str | None) -> str | None:
    if value is None:
        return None
    trimmed = value.strip()
    return trimmed or None


def _parse_access_tokens(value: str | None) -> dict[str, Actor]:
    tokens: dict[str, Actor] = {}
    if value is None:
        return tokens

    for entry in value.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) not in (3, 4) or not all(part.strip() for part in parts[:3]):
            raise ValueError(
                "STARGUIDE_ACCESS_TOKENS entries must look like token:actor_id:role[:email]."
            )
        token, actor_id, role_name = (part.strip() for part in parts[:3])
        try:
            role = Role(role_name)
        except ValueError as exc:
            raise ValueError(
                f"STARGUIDE_ACCESS_TOKENS has an unknown role '{role_name}'."
            ) from exc
        email = parts[3].strip() if len(parts) == 4 and parts[3].strip() else None
        tokens[token] = Actor(id=actor_id, role=role, email=email)
    return tokens


@dataclass(frozen=True)
class StarguideSettings:
    """Deployment settings for the edit service.

    Values are read from environment variables so the service can be
    configured without modifying code. Empty strings are treated as unset.
    """

    github_token: str | None = field(default=None, repr=False)
    github_owner: str | None = None
    github_repo: str | None = None
    github_branch: str = DEFAULT_BRANCH
    github_api_url: str = DEFAULT_API_URL
    character_dir: str = DEFAULT_CHARACTER_DIR
    http_timeout: float = DEFAULT_TIMEOUT
    edit_root: Path | None = None
    content_root: Path | None = None
    access_tokens: Mapping[str, Actor] = field(default_factory=dict, repr=False)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StarguideSettings":
        """Return settings populated from ``environ``.

        Args:
            environ: Optional mapping of environment variables. When omitted,
                :data:`os.environ` is used.
        """

        source = environ if environ is not None else os.environ

        http_timeout = DEFAULT_TIMEOUT
        timeout_raw = _optional_string(source.get("STARGUIDE_HTTP_TIMEOUT"))
        if timeout_raw is not None:
            try:
                http_timeout = float(timeout_raw)
            except ValueError as exc:
                raise ValueError(
                    "STARGUIDE_HTTP_TIMEOUT must be a number of seconds."
                ) from exc
            if http_timeout <= 0:
                raise ValueError("STARGUIDE_HTTP_TIMEOUT must be greater than zero.")

        return cls(
            github_token=_optional_string(source.get("GITHUB_TOKEN")),
            github_owner=_optional_string(source.get("GITHUB_OWNER")),
            github_repo=_optional_string(source.get("GITHUB_REPO")),
            github_branch=_normalise_string(
                source.get("GITHUB_BRANCH"), default=DEFAULT_BRANCH
            ),
            github_api_url=_normalise_string(
                source.get("GITHUB_API_URL"), default=DEFAULT_API_URL
            ),
            character_dir=_normalise_string(
                source.get("STARGUIDE_CHARACTER_DIR"), default=DEFAULT_CHARACTER_DIR
            ).rstrip("/"),
            http_timeout=http_timeout,
            edit_root=_normalise_path(source.get("STARGUIDE_EDIT_ROOT")),
            content_root=_normalise_path(source.get("STARGUIDE_CONTENT_ROOT")),
            access_tokens=_parse_access_tokens(source.get("STARGUIDE_ACCESS_TOKENS")),
            log_level=_normalise_string(
                source.get("STARGUIDE_LOG_LEVEL"), default="INFO"
            ).upper(),
        )

    def require_github(self) -> tuple[str, str, str]:
        """Return ``(token, owner, repo)`` or raise if any is missing."""

        token, owner, repo = self.github_token, self.github_owner, self.github_repo
        if token and owner and repo:
            return token, owner, repo

        missing = [
            name
            for name, value in (
                ("GITHUB_TOKEN", token),
                ("GITHUB_OWNER", owner),
                ("GITHUB_REPO", repo),
            )
            if not value
        ]
        raise ConfigurationError(
            "Missing required GitHub environment variables: " + ", ".join(missing),
            public_message="Server configuration error: GitHub integration not configured",
        )


__all__ = ["StarguideSettings"]
