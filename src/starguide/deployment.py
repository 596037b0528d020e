"""Deploy approved character edits to the canonical content repository."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from .auth import Actor
from .codec import EncodeError, RecordCodec, quote_string
from .edits import (
    Edit,
    EditStatus,
    EditStore,
    FieldPatch,
    FileEditStore,
    FullReplace,
    validate_character_id,
)
from .errors import (
    ConfigurationError,
    InvalidStateError,
    MalformedDocumentError,
    StarguideError,
    ValidationError,
)
from .patching import PatchError, apply_field_changes
from .repository import (
    ContentRepository,
    FileContentRepository,
    GitHubContentRepository,
)
from .settings import StarguideSettings

logger = logging.getLogger(__name__)

DEFAULT_CHANGE_SUMMARY = "Character data update"


@dataclass(frozen=True)
class DeploymentResult:
    """Outcome reported back to whoever triggered a deployment."""

    edit_id: int
    target_id: str
    path: str
    revision: str
    message: str
    tier_edits_warning: str | None = None
    status_recorded: bool = True
    reconciliation_warning: str | None = None


@dataclass(frozen=True)
class CharacterSnapshot:
    """Decoded canonical record with the revision it was read at."""

    target_id: str
    path: str
    revision: str
    record: Mapping[str, Any]


@dataclass(frozen=True)
class _Materialized:
    record: dict[str, Any]
    expected_revision: str | None


def build_commit_message(record: Mapping[str, Any], edit: Edit, actor: Actor) -> str:
    """Compose the commit message recorded for a deployment."""

    name = record.get("name") or edit.target_id
    summary = (edit.change_summary or "").strip() or DEFAULT_CHANGE_SUMMARY
    return (
        f"Update {name} character data\n"
        f"\n"
        f"{summary}\n"
        f"\n"
        f"Edit ID: {edit.id}\n"
        f"Approved by: {actor.display_name}"
    )


def tier_entry_line(character_id: str, roles: Mapping[str, str], element: str) -> str:
    """Return the ``tierData.ts`` entry assigning ``roles`` to ``character_id``."""

    rendered = ", ".join(
        f"{quote_string(role)}: {quote_string(tier)}" for role, tier in sorted(roles.items())
    )
    return (
        f"  {quote_string(character_id)}: "
        f"{{ roles: {{ {rendered} }}, element: {quote_string(element)} }},"
    )


def describe_tier_edits(
    tier_edits: Mapping[str, Mapping[str, str]],
    *,
    target_id: str | None = None,
    element: str = "",
) -> str | None:
    """Return the manual-action warning for unapplied tier edits, if any.

    With ``target_id`` the warning also carries, per mode, the entry line to
    paste into ``tierData.ts``. Only the edited roles are listed; roles the
    existing entry already holds must be kept alongside them.
    """

    changes = [
        f"{mode}/{role} -> {tier}"
        for mode in sorted(tier_edits)
        for role, tier in sorted(tier_edits[mode].items())
    ]
    if not changes:
        return None
    warning = (
        "Tier edits were not applied and need to be made manually in tierData.ts: "
        + ", ".join(changes)
    )
    if target_id is None:
        return warning

    entries = [
        f"{mode}:\n{tier_entry_line(target_id, tier_edits[mode], element)}"
        for mode in sorted(tier_edits)
        if tier_edits[mode]
    ]
    return warning + "\n" + "\n".join(entries)


class DeploymentOrchestrator:
    """Run the approve-to-deploy transition for a single edit at a time.

    The orchestrator keeps no state between calls. Each :meth:`deploy` loads
    the edit, checks it is approved, materialises the new record, encodes and
    commits it, then records the deployment on the edit.
    """

    def __init__(
        self,
        edit_store: EditStore,
        repository: ContentRepository,
        *,
        codec: RecordCodec | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.edit_store = edit_store
        self.repository = repository
        self.codec = codec or RecordCodec()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def canonical_path(self, target_id: str) -> str:
        """Return the repository path of ``target_id``'s character file."""

        validate_character_id(target_id)
        return f"{self.codec.character_dir}/{target_id}.ts"

    def deploy(self, edit_id: int, actor: Actor) -> DeploymentResult:
        """Deploy approved edit ``edit_id`` on behalf of ``actor``.

        ``actor`` is trusted to be an admin; checking that is the caller's job.

        Raises:
            NotFoundError: If the edit or the canonical file is missing.
            InvalidStateError: If the edit is not ``approved``.
            ValidationError: If a field change cannot be applied.
            MalformedDocumentError: If the canonical file cannot be decoded or
                the resulting record cannot be encoded.
            RateLimited, UpstreamError, TransportError, ConflictError: From
                the repository, before anything was written.
        """

        edit = self.edit_store.get(edit_id)
        if edit.status is not EditStatus.APPROVED:
            raise InvalidStateError(
                f"Edit cannot be deployed: current status is '{edit.status.value}'. "
                "Only 'approved' edits can be deployed.",
                current_status=edit.status.value,
            )

        path = self.canonical_path(edit.target_id)
        materialized = self._materialize(edit, path)

        try:
            content = self.codec.encode(materialized.record, header_path=path)
        except EncodeError as exc:
            raise MalformedDocumentError(
                f"Failed to generate character file for edit {edit.id}: {exc}",
                public_message="Failed to generate character file",
            ) from exc

        if edit.has_tier_edits:
            logger.warning(
                "Edit %s has tier edits that need manual review: %s",
                edit.id,
                edit.tier_edits,
            )

        message = build_commit_message(materialized.record, edit, actor)
        try:
            commit = self.repository.commit(
                path,
                content,
                message,
                expected_revision=materialized.expected_revision,
            )
        except StarguideError as exc:
            logger.error(
                "Commit of edit %s for %s failed (%s, base revision %s): %s",
                edit.id,
                edit.target_id,
                exc.kind.value,
                materialized.expected_revision,
                exc,
            )
            raise
        logger.info(
            "Deployed edit %s for %s at revision %s", edit.id, edit.target_id, commit.revision
        )

        status_recorded = True
        reconciliation_warning = None
        try:
            self.finalize(edit.id, commit.revision, actor)
        except Exception:
            # The commit is already on the main line and cannot be undone.
            logger.exception(
                "Failed to mark edit %s deployed after committing %s (revision %s); "
                "re-run finalize with this revision to reconcile",
                edit.id,
                edit.target_id,
                commit.revision,
            )
            status_recorded = False
            reconciliation_warning = (
                f"Changes were committed at {commit.revision} but edit {edit.id} "
                "is not yet marked deployed; re-run finalize with that revision."
            )

        name = materialized.record.get("name") or edit.target_id
        return DeploymentResult(
            edit_id=edit.id,
            target_id=edit.target_id,
            path=path,
            revision=commit.revision,
            message=f"Deployed {name} update directly to main",
            tier_edits_warning=describe_tier_edits(
                edit.tier_edits,
                target_id=edit.target_id,
                element=str(materialized.record.get("element") or ""),
            ),
            status_recorded=status_recorded,
            reconciliation_warning=reconciliation_warning,
        )

    def finalize(self, edit_id: int, revision: str, actor: Actor) -> Edit:
        """Record that ``edit_id`` was deployed at ``revision``.

        Safe to repeat with the same revision.
        """

        return self.edit_store.mark_deployed(
            edit_id,
            revision=revision,
            reviewer_id=actor.id,
            deployed_at=self._clock(),
        )

    def read_character(self, target_id: str) -> CharacterSnapshot:
        """Fetch and decode the current canonical record for ``target_id``."""

        path = self.canonical_path(target_id)
        current = self.repository.fetch(path)
        record = self.codec.decode(current.content)
        return CharacterSnapshot(
            target_id=target_id, path=path, revision=current.revision, record=record
        )

    def _materialize(self, edit: Edit, path: str) -> _Materialized:
        payload = edit.payload
        if isinstance(payload, FullReplace):
            logger.info("Processing full-record edit %s for %s", edit.id, edit.target_id)
            return _Materialized(record=copy.deepcopy(dict(payload.record)), expected_revision=None)

        if not isinstance(payload, FieldPatch):
            raise ValidationError(
                f"Invalid edit {edit.id}: neither field_changes nor character_data present"
            )

        logger.info("Processing field-level edit %s for %s", edit.id, edit.target_id)
        current = self.repository.fetch(path)
        record = self.codec.decode(current.content)
        try:
            applied = apply_field_changes(record, copy.deepcopy(dict(payload.changes)))
        except PatchError as exc:
            raise ValidationError(
                str(exc), public_message=f"Failed to apply field change at '{exc.path}'"
            ) from exc
        logger.info("Applied %s field changes to %s", applied, edit.target_id)
        return _Materialized(record=record, expected_revision=current.revision)


def build_repository(settings: StarguideSettings) -> ContentRepository:
    """Create the content repository configured by ``settings``."""

    if settings.content_root is not None:
        return FileContentRepository(settings.content_root)

    token, owner, repo = settings.require_github()
    return GitHubContentRepository(
        token=token,
        owner=owner,
        repo=repo,
        branch=settings.github_branch,
        api_url=settings.github_api_url,
        timeout=settings.http_timeout,
    )


def build_edit_store(settings: StarguideSettings) -> EditStore:
    """Create the edit store configured by ``settings``."""

    if settings.edit_root is None:
        raise ConfigurationError(
            "Missing required environment variable: STARGUIDE_EDIT_ROOT",
            public_message="Server configuration error: edit store not configured",
        )
    return FileEditStore(settings.edit_root)


def build_orchestrator(settings: StarguideSettings) -> DeploymentOrchestrator:
    """Wire a fresh orchestrator from ``settings``."""

    return DeploymentOrchestrator(
        build_edit_store(settings),
        build_repository(settings),
        codec=RecordCodec(character_dir=settings.character_dir),
    )


__all__ = [
    "CharacterSnapshot",
    "DEFAULT_CHANGE_SUMMARY",
    "DeploymentOrchestrator",
    "DeploymentResult",
    "build_commit_message",
    "build_edit_store",
    "build_orchestrator",
    "build_repository",
    "describe_tier_edits",
    "tier_entry_line",
]
