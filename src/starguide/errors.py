"""Classified errors raised by the deployment pipeline."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """High-level categories used to classify deployment failures."""

    AUTH = "auth"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    MALFORMED_DOCUMENT = "malformed_document"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"
    TRANSPORT = "transport"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"

    def is_retryable(self) -> bool:
        """Return ``True`` when re-invoking the operation may succeed."""

        return self in {self.CONFLICT, self.RATE_LIMITED, self.TRANSPORT, self.UPSTREAM}


class StarguideError(RuntimeError):
    """Base exception carrying a classification and a caller-safe message.

    ``str(error)`` may include internal detail intended for logs. Callers
    outside the trust boundary should only ever see :attr:`public_message`.
    """

    kind: ErrorKind = ErrorKind.INTERNAL
    status_code: int = 500
    default_public_message = "Internal error"

    def __init__(self, message: str, *, public_message: str | None = None) -> None:
        super().__init__(message)
        self.public_message = public_message or self.default_public_message


class AuthError(StarguideError):
    """Raised when a caller is unauthenticated or lacks the required role."""

    kind = ErrorKind.AUTH
    default_public_message = "Authentication required"

    def __init__(
        self,
        message: str,
        *,
        forbidden: bool = False,
        public_message: str | None = None,
    ) -> None:
        super().__init__(message, public_message=public_message or message)
        self.forbidden = forbidden
        self.status_code = 403 if forbidden else 401


class ValidationError(StarguideError):
    """Raised when a request or edit payload has an invalid shape."""

    kind = ErrorKind.VALIDATION
    status_code = 400

    def __init__(self, message: str, *, public_message: str | None = None) -> None:
        super().__init__(message, public_message=public_message or message)


class NotFoundError(StarguideError):
    """Raised when an edit or canonical file does not exist."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, message: str, *, public_message: str | None = None) -> None:
        super().__init__(message, public_message=public_message or message)


class InvalidStateError(StarguideError):
    """Raised when an edit is not in a status that permits the operation."""

    kind = ErrorKind.INVALID_STATE
    status_code = 400

    def __init__(self, message: str, *, current_status: str | None = None) -> None:
        super().__init__(message, public_message=message)
        self.current_status = current_status


class ConflictError(StarguideError):
    """Raised when the canonical file changed since it was read."""

    kind = ErrorKind.CONFLICT
    status_code = 409
    default_public_message = (
        "Character file changed upstream since it was read; retry the deployment."
    )

    def __init__(self, path: str, expected_revision: str | None = None) -> None:
        super().__init__(
            f"Revision of '{path}' no longer matches {expected_revision!r}."
        )
        self.path = path
        self.expected_revision = expected_revision


class MalformedDocumentError(StarguideError):
    """Raised when canonical content cannot be decoded or encoded."""

    kind = ErrorKind.MALFORMED_DOCUMENT
    default_public_message = "Failed to parse character file"


class RateLimited(StarguideError):
    """Raised when the content repository rejects a call for rate limiting."""

    kind = ErrorKind.RATE_LIMITED
    status_code = 429
    default_public_message = "GitHub API rate limit exceeded"

    def __init__(self, retry_after: int) -> None:
        super().__init__(
            f"Rate limit exceeded. Retry after {retry_after} seconds."
        )
        self.retry_after = retry_after


class UpstreamError(StarguideError):
    """Raised for any non-rate-limit failure response from the repository."""

    kind = ErrorKind.UPSTREAM
    default_public_message = "GitHub API error"

    def __init__(self, upstream_status: int, message: str) -> None:
        super().__init__(f"HTTP {upstream_status}: {message}")
        self.upstream_status = upstream_status
        self.status_code = 502 if upstream_status >= 500 else 500


class TransportError(StarguideError):
    """Raised when the repository could not be reached at all."""

    kind = ErrorKind.TRANSPORT
    status_code = 503
    default_public_message = "Content repository unavailable"


class ConfigurationError(StarguideError):
    """Raised when required deployment settings are missing."""

    kind = ErrorKind.CONFIGURATION
    default_public_message = "Server configuration error"


__all__ = [
    "AuthError",
    "ConfigurationError",
    "ConflictError",
    "ErrorKind",
    "InvalidStateError",
    "MalformedDocumentError",
    "NotFoundError",
    "RateLimited",
    "StarguideError",
    "TransportError",
    "UpstreamError",
    "ValidationError",
]
