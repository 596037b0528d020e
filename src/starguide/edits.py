"""Edit proposals, their review lifecycle, and the stores that persist them."""

from __future__ import annotations

import copy
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from .errors import InvalidStateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

_CHARACTER_ID = re.compile(r"^[a-z0-9][a-z0-9-]*$")
TIER_MODES = ("moc", "pf", "as")


class EditStatus(str, Enum):
    """Review states an edit moves through."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEPLOYED = "deployed"

    def is_terminal(self) -> bool:
        return self in {EditStatus.REJECTED, EditStatus.DEPLOYED}


ALLOWED_TRANSITIONS: Mapping[EditStatus, frozenset[EditStatus]] = {
    EditStatus.PENDING: frozenset({EditStatus.APPROVED, EditStatus.REJECTED}),
    EditStatus.APPROVED: frozenset({EditStatus.DEPLOYED}),
    EditStatus.REJECTED: frozenset(),
    EditStatus.DEPLOYED: frozenset(),
}


def ensure_transition(current: EditStatus, new: EditStatus) -> None:
    """Raise :class:`InvalidStateError` unless ``current -> new`` is allowed."""

    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateError(
            f"Edit cannot move from '{current.value}' to '{new.value}'",
            current_status=current.value,
        )


def validate_character_id(character_id: str) -> str:
    """Return ``character_id`` if it is a safe kebab-case identifier."""

    if not isinstance(character_id, str) or not _CHARACTER_ID.match(character_id):
        raise ValidationError(f"Invalid character id: {character_id!r}")
    return character_id


@dataclass(frozen=True)
class FullReplace:
    """Legacy payload overwriting the whole character record."""

    record: Mapping[str, Any]


@dataclass(frozen=True)
class FieldPatch:
    """Sparse payload of ``path -> value`` overwrites, applied in order."""

    changes: Mapping[str, Any]


EditPayload = Union[FullReplace, FieldPatch]


@dataclass
class Edit:
    """A proposal to change one character record."""

    id: int
    target_id: str
    payload: EditPayload | None
    status: EditStatus = EditStatus.PENDING
    editor_id: str | None = None
    created_at: datetime | None = None
    tier_edits: Dict[str, Dict[str, str]] = field(default_factory=dict)
    change_summary: str | None = None
    reviewer_id: str | None = None
    reviewed_at: datetime | None = None
    deployed_at: datetime | None = None
    commit_revision: str | None = None

    def __post_init__(self) -> None:
        self.status = EditStatus(self.status)
        validate_character_id(self.target_id)
        if self.payload is None and self.status is not EditStatus.REJECTED:
            raise ValidationError(
                "Invalid edit: neither field_changes nor character_data present"
            )
        if self.payload is not None and not isinstance(
            self.payload, (FullReplace, FieldPatch)
        ):
            raise TypeError("payload must be a FullReplace or FieldPatch")

    @property
    def has_tier_edits(self) -> bool:
        return any(self.tier_edits.get(mode) for mode in self.tier_edits)

    def to_payload(self) -> Dict[str, Any]:
        """Return a JSON-serialisable row for this edit."""

        return {
            "id": self.id,
            "character_id": self.target_id,
            "character_data": (
                copy.deepcopy(dict(self.payload.record))
                if isinstance(self.payload, FullReplace)
                else None
            ),
            "field_changes": (
                dict(self.payload.changes)
                if isinstance(self.payload, FieldPatch)
                else None
            ),
            "tier_edits": copy.deepcopy(self.tier_edits) or None,
            "status": self.status.value,
            "editor_id": self.editor_id,
            "created_at": _format_time(self.created_at),
            "reviewer_id": self.reviewer_id,
            "reviewed_at": _format_time(self.reviewed_at),
            "deployed_at": _format_time(self.deployed_at),
            "github_commit_sha": self.commit_revision,
            "change_summary": self.change_summary,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Edit":
        """Build an edit from its stored row representation."""

        if not isinstance(payload, Mapping):
            raise ValidationError("Invalid edit row: expected an object")

        edit_id = payload.get("id")
        if not isinstance(edit_id, int) or isinstance(edit_id, bool):
            raise ValidationError("Invalid edit row: 'id' must be an integer")

        record = payload.get("character_data")
        changes = payload.get("field_changes")
        if record is not None and changes is not None:
            raise ValidationError(
                f"Invalid edit {edit_id}: both character_data and field_changes present"
            )

        edit_payload: EditPayload | None = None
        if changes is not None:
            if not isinstance(changes, Mapping):
                raise ValidationError(f"Invalid edit {edit_id}: field_changes must be an object")
            edit_payload = FieldPatch(changes=dict(changes))
        elif record is not None:
            if not isinstance(record, Mapping):
                raise ValidationError(f"Invalid edit {edit_id}: character_data must be an object")
            edit_payload = FullReplace(record=dict(record))

        try:
            status = EditStatus(payload.get("status", EditStatus.PENDING.value))
        except ValueError as exc:
            raise ValidationError(
                f"Invalid edit {edit_id}: unknown status {payload.get('status')!r}"
            ) from exc

        return cls(
            id=edit_id,
            target_id=str(payload.get("character_id", "")),
            payload=edit_payload,
            status=status,
            editor_id=payload.get("editor_id"),
            created_at=_parse_time(payload.get("created_at")),
            tier_edits=_tier_edits_from_payload(payload.get("tier_edits")),
            change_summary=payload.get("change_summary"),
            reviewer_id=payload.get("reviewer_id"),
            reviewed_at=_parse_time(payload.get("reviewed_at")),
            deployed_at=_parse_time(payload.get("deployed_at")),
            commit_revision=payload.get("github_commit_sha"),
        )


class EditStore(ABC):
    """Interface describing how edit proposals are persisted."""

    @abstractmethod
    def get(self, edit_id: int) -> Edit:
        """Return the edit with ``edit_id``.

        Raises:
            NotFoundError: If the edit does not exist.
        """

    @abstractmethod
    def save(self, edit: Edit) -> None:
        """Insert or overwrite ``edit``."""

    @abstractmethod
    def list_edits(self, status: EditStatus | None = None) -> List[Edit]:
        """Return stored edits ordered by id, optionally filtered by status."""

    def update_status(
        self,
        edit_id: int,
        status: EditStatus,
        *,
        reviewer_id: str,
        at: datetime,
    ) -> Edit:
        """Record a review decision, enforcing the transition table."""

        edit = self.get(edit_id)
        if status is EditStatus.DEPLOYED:
            raise InvalidStateError(
                "Use mark_deployed to record a deployment",
                current_status=edit.status.value,
            )
        ensure_transition(edit.status, status)
        updated = replace(edit, status=status, reviewer_id=reviewer_id, reviewed_at=at)
        self.save(updated)
        logger.info("Edit %s moved to %s by %s", edit_id, status.value, reviewer_id)
        return updated

    def mark_deployed(
        self,
        edit_id: int,
        *,
        revision: str,
        reviewer_id: str,
        deployed_at: datetime,
    ) -> Edit:
        """Mark ``edit_id`` deployed at ``revision``.

        Re-running with the revision already recorded returns the stored edit
        untouched, so a reconciliation can be repeated safely.

        Raises:
            InvalidStateError: If the edit is neither approved nor already
                deployed at ``revision``.
        """

        edit = self.get(edit_id)
        if edit.status is EditStatus.DEPLOYED:
            if edit.commit_revision == revision:
                return edit
            raise InvalidStateError(
                f"Edit {edit_id} is already deployed at {edit.commit_revision}",
                current_status=edit.status.value,
            )
        ensure_transition(edit.status, EditStatus.DEPLOYED)

        updated = replace(
            edit,
            status=EditStatus.DEPLOYED,
            commit_revision=revision,
            reviewer_id=reviewer_id,
            reviewed_at=edit.reviewed_at or deployed_at,
            deployed_at=deployed_at,
        )
        self.save(updated)
        return updated


class InMemoryEditStore(EditStore):
    """Keep edits in local process memory."""

    def __init__(self, edits: List[Edit] | None = None) -> None:
        self._edits: Dict[int, Edit] = {}
        for edit in edits or []:
            self.save(edit)

    def get(self, edit_id: int) -> Edit:
        try:
            return self._edits[edit_id]
        except KeyError as exc:
            raise NotFoundError(
                f"Edit {edit_id} does not exist", public_message="Edit not found"
            ) from exc

    def save(self, edit: Edit) -> None:
        self._edits[edit.id] = edit

    def list_edits(self, status: EditStatus | None = None) -> List[Edit]:
        return [
            self._edits[key]
            for key in sorted(self._edits)
            if status is None or self._edits[key].status is status
        ]


class FileEditStore(EditStore):
    """Persist edits as one JSON file per edit."""

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def get(self, edit_id: int) -> Edit:
        edit_file = self._edit_path(edit_id)
        if not edit_file.exists():
            raise NotFoundError(
                f"Edit {edit_id} does not exist", public_message="Edit not found"
            )
        try:
            payload = json.loads(edit_file.read_text(encoding="utf-8"))
        except ValueError as exc:
            raise ValidationError(f"Edit file for {edit_id} is not valid JSON") from exc
        return Edit.from_payload(payload)

    def save(self, edit: Edit) -> None:
        edit_file = self._edit_path(edit.id)
        temporary = edit_file.with_suffix(".json.tmp")
        temporary.write_text(json.dumps(edit.to_payload(), indent=2), encoding="utf-8")
        temporary.replace(edit_file)

    def list_edits(self, status: EditStatus | None = None) -> List[Edit]:
        edits = [
            self.get(int(edit_path.stem))
            for edit_path in self.storage_dir.glob("*.json")
            if edit_path.is_file() and edit_path.stem.isdigit()
        ]
        edits.sort(key=lambda edit: edit.id)
        return [edit for edit in edits if status is None or edit.status is status]

    def _edit_path(self, edit_id: int) -> Path:
        if not isinstance(edit_id, int) or isinstance(edit_id, bool) or edit_id < 0:
            raise ValidationError("edit id must be a non-negative integer")
        return self.storage_dir / f"{edit_id}.json"


def _tier_edits_from_payload(payload: Any) -> Dict[str, Dict[str, str]]:
    if payload is None:
        return {}
    if not isinstance(payload, Mapping):
        raise ValidationError("tier_edits must be an object")

    tier_edits: Dict[str, Dict[str, str]] = {}
    for mode, roles in payload.items():
        if mode not in TIER_MODES:
            raise ValidationError(f"Unknown tier edit mode {mode!r}")
        if roles is None:
            continue
        if not isinstance(roles, Mapping):
            raise ValidationError(f"tier_edits.{mode} must be an object")
        cleaned = {str(role): str(tier) for role, tier in roles.items() if tier is not None}
        if cleaned:
            tier_edits[mode] = cleaned
    return tier_edits


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"Invalid timestamp {value!r}") from exc


__all__ = [
    "ALLOWED_TRANSITIONS",
    "Edit",
    "EditPayload",
    "EditStatus",
    "EditStore",
    "FieldPatch",
    "FileEditStore",
    "FullReplace",
    "InMemoryEditStore",
    "TIER_MODES",
    "ensure_transition",
    "validate_character_id",
]
