"""Clients for the version-controlled store holding canonical character files."""

from __future__ import annotations

import base64
import hashlib
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Protocol

import requests

from .errors import (
    ConflictError,
    NotFoundError,
    RateLimited,
    TransportError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_BRANCH = "main"
DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRY_AFTER = 60


@dataclass(frozen=True)
class FileRevision:
    """Content of a canonical file together with its revision marker."""

    path: str
    content: str
    revision: str


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a successful commit."""

    path: str
    revision: str


class ContentRepository(ABC):
    """Interface describing how canonical character files are read and written."""

    @abstractmethod
    def fetch(self, path: str) -> FileRevision:
        """Return the current content and revision stored at ``path``.

        Raises:
            NotFoundError: If ``path`` does not exist upstream.
        """

    @abstractmethod
    def commit(
        self,
        path: str,
        content: str,
        message: str,
        *,
        expected_revision: str | None = None,
    ) -> CommitResult:
        """Write ``content`` to ``path`` on the main line in a single attempt.

        When ``expected_revision`` is provided the write only succeeds if the
        file is still at that revision.

        Raises:
            ConflictError: If the file moved past ``expected_revision``.
        """


def blob_revision(content: str) -> str:
    """Return the git blob sha1 for ``content``."""

    data = content.encode("utf-8")
    header = f"blob {len(data)}\0".encode("ascii")
    return hashlib.sha1(header + data).hexdigest()


class InMemoryContentRepository(ContentRepository):
    """Keep canonical files in local process memory."""

    def __init__(self, files: Mapping[str, str] | None = None) -> None:
        self._files: Dict[str, str] = dict(files or {})
        self.commits: List[tuple[str, str]] = []

    def fetch(self, path: str) -> FileRevision:
        try:
            content = self._files[path]
        except KeyError as exc:
            raise NotFoundError(
                f"File '{path}' does not exist", public_message="Character file not found"
            ) from exc
        return FileRevision(path=path, content=content, revision=blob_revision(content))

    def commit(
        self,
        path: str,
        content: str,
        message: str,
        *,
        expected_revision: str | None = None,
    ) -> CommitResult:
        if expected_revision is not None:
            current = self._files.get(path)
            if current is None or blob_revision(current) != expected_revision:
                raise ConflictError(path, expected_revision)

        self._files[path] = content
        self.commits.append((path, message))
        return CommitResult(path=path, revision=blob_revision(content))


class FileContentRepository(ContentRepository):
    """Persist canonical files inside a local directory tree."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def fetch(self, path: str) -> FileRevision:
        file_path = self._resolve(path)
        if not file_path.is_file():
            raise NotFoundError(
                f"File '{path}' does not exist", public_message="Character file not found"
            )
        try:
            content = file_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TransportError(f"Failed to read '{path}': {exc}") from exc
        return FileRevision(path=path, content=content, revision=blob_revision(content))

    def commit(
        self,
        path: str,
        content: str,
        message: str,
        *,
        expected_revision: str | None = None,
    ) -> CommitResult:
        file_path = self._resolve(path)
        if expected_revision is not None:
            current = (
                file_path.read_text(encoding="utf-8") if file_path.is_file() else None
            )
            if current is None or blob_revision(current) != expected_revision:
                raise ConflictError(path, expected_revision)

        temporary = file_path.with_suffix(file_path.suffix + ".tmp")
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            temporary.write_text(content, encoding="utf-8")
            temporary.replace(file_path)
        except OSError as exc:
            raise TransportError(f"Failed to write '{path}': {exc}") from exc

        logger.info("Wrote %s locally: %s", path, message.splitlines()[0] if message else "")
        return CommitResult(path=path, revision=blob_revision(content))

    def _resolve(self, path: str) -> Path:
        root = self.root.resolve()
        candidate = (root / path).resolve()
        if candidate != root and root not in candidate.parents:
            raise ValidationError(f"Path '{path}' escapes the content root")
        return candidate


class _SessionProtocol(Protocol):
    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Issue an HTTP request."""


@dataclass
class GitHubContentRepository(ContentRepository):
    """GitHub contents API client committing straight to one branch.

    Every call is a single HTTP request bounded by ``timeout``. Nothing is
    retried here; callers decide what to do with :class:`RateLimited` and
    :class:`TransportError`.
    """

    token: str = field(repr=False)
    owner: str
    repo: str
    branch: str = DEFAULT_BRANCH
    api_url: str = DEFAULT_API_URL
    timeout: float = DEFAULT_TIMEOUT
    session: _SessionProtocol | None = None
    clock: Callable[[], float] = field(default=time.time)

    def __post_init__(self) -> None:
        self._session: _SessionProtocol = (
            self.session if self.session is not None else requests.Session()
        )
        self._base = (
            f"{self.api_url.rstrip('/')}/repos/{self.owner}/{self.repo}/contents"
        )

    def fetch(self, path: str) -> FileRevision:
        response = self._request("GET", path, params={"ref": self.branch})
        if response.status_code == 404:
            raise NotFoundError(
                f"File '{path}' does not exist on {self.branch}",
                public_message="Character file not found",
            )
        payload = self._json(self._check(response))

        if not isinstance(payload, dict) or "content" not in payload:
            raise UpstreamError(response.status_code, f"'{path}' is not a file")
        try:
            content = base64.b64decode(payload["content"]).decode("utf-8")
        except (ValueError, TypeError) as exc:
            raise UpstreamError(
                response.status_code, f"Undecodable content for '{path}'"
            ) from exc
        return FileRevision(path=path, content=content, revision=str(payload.get("sha", "")))

    def commit(
        self,
        path: str,
        content: str,
        message: str,
        *,
        expected_revision: str | None = None,
    ) -> CommitResult:
        sha = expected_revision
        if sha is None:
            sha = self._current_sha(path)

        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": self.branch,
        }
        if sha:
            body["sha"] = sha

        response = self._request("PUT", path, json=body)
        if expected_revision is not None and self._is_sha_mismatch(response):
            raise ConflictError(path, expected_revision)
        payload = self._json(self._check(response))

        try:
            revision = str(payload["commit"]["sha"])
        except (KeyError, TypeError) as exc:
            raise UpstreamError(
                response.status_code, "Commit response did not include a sha"
            ) from exc

        logger.info("Committed %s to %s as %s", path, self.branch, revision)
        return CommitResult(path=path, revision=revision)

    def _is_sha_mismatch(self, response: Any) -> bool:
        if response.status_code == 409:
            return True
        if response.status_code != 422:
            return False
        # GitHub also answers 422 for malformed bodies.
        return "does not match" in self._error_message(response)

    def _current_sha(self, path: str) -> str | None:
        response = self._request("GET", path, params={"ref": self.branch})
        if response.status_code == 404:
            return None
        payload = self._json(self._check(response))
        if isinstance(payload, dict):
            sha = payload.get("sha")
            return str(sha) if sha else None
        return None

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        try:
            return self._session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as exc:
            raise TransportError(f"GitHub {method} {path} failed: {exc}") from exc

    def _check(self, response: Any) -> Any:
        status = response.status_code
        headers = response.headers or {}

        if status == 429 or (
            status == 403 and str(headers.get("X-RateLimit-Remaining", "")) == "0"
        ):
            retry_after = self._retry_after(headers)
            logger.warning("GitHub rate limit hit; retry after %s seconds", retry_after)
            raise RateLimited(retry_after)

        if status < 200 or status >= 300:
            raise UpstreamError(status, self._error_message(response))
        return response

    def _retry_after(self, headers: Mapping[str, str]) -> int:
        retry_after = headers.get("Retry-After")
        if retry_after is not None:
            try:
                return max(1, int(str(retry_after).strip()))
            except ValueError:
                pass

        reset = headers.get("X-RateLimit-Reset")
        if reset is not None:
            try:
                return max(1, math.ceil(float(reset) - self.clock()))
            except ValueError:
                pass

        return DEFAULT_RETRY_AFTER

    @staticmethod
    def _error_message(response: Any) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return getattr(response, "reason", None) or f"HTTP {response.status_code}"

    @staticmethod
    def _json(response: Any) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(response.status_code, "Response was not JSON") from exc


__all__ = [
    "CommitResult",
    "ContentRepository",
    "FileContentRepository",
    "FileRevision",
    "GitHubContentRepository",
    "InMemoryContentRepository",
    "blob_revision",
]
