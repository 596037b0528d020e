"""Core package for deploying reviewed Starguide character edits."""

from .auth import Actor, Role, StaticTokenIdentityProvider
from .codec import RecordCodec, decode_record, encode_record
from .deployment import (
    CharacterSnapshot,
    DeploymentOrchestrator,
    DeploymentResult,
    build_orchestrator,
)
from .edits import (
    Edit,
    EditStatus,
    EditStore,
    FieldPatch,
    FileEditStore,
    FullReplace,
    InMemoryEditStore,
)
from .errors import (
    AuthError,
    ConfigurationError,
    ConflictError,
    ErrorKind,
    InvalidStateError,
    MalformedDocumentError,
    NotFoundError,
    RateLimited,
    StarguideError,
    TransportError,
    UpstreamError,
    ValidationError,
)
from .patching import PatchError, apply_field_changes, set_value_at_path
from .repository import (
    CommitResult,
    ContentRepository,
    FileContentRepository,
    FileRevision,
    GitHubContentRepository,
    InMemoryContentRepository,
)
from .settings import StarguideSettings

__all__ = [
    "Actor",
    "Role",
    "StaticTokenIdentityProvider",
    "RecordCodec",
    "decode_record",
    "encode_record",
    "CharacterSnapshot",
    "DeploymentOrchestrator",
    "DeploymentResult",
    "build_orchestrator",
    "Edit",
    "EditStatus",
    "EditStore",
    "FieldPatch",
    "FileEditStore",
    "FullReplace",
    "InMemoryEditStore",
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
    "PatchError",
    "apply_field_changes",
    "set_value_at_path",
    "CommitResult",
    "ContentRepository",
    "FileContentRepository",
    "FileRevision",
    "GitHubContentRepository",
    "InMemoryContentRepository",
    "StarguideSettings",
]
