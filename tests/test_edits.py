"""Tests for edit payloads, the review lifecycle and edit stores."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from starguide.edits import (
    Edit,
    EditStatus,
    FieldPatch,
    FileEditStore,
    FullReplace,
    InMemoryEditStore,
    ensure_transition,
    validate_character_id,
)
from starguide.errors import InvalidStateError, NotFoundError, ValidationError

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _edit(status: EditStatus = EditStatus.APPROVED, **overrides) -> Edit:
    options = {
        "id": 5,
        "target_id": "kafka",
        "payload": FieldPatch({"investment.eidolons.0.penalty": -10}),
        "status": status,
    }
    options.update(overrides)
    return Edit(**options)


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (EditStatus.PENDING, EditStatus.APPROVED),
        (EditStatus.PENDING, EditStatus.REJECTED),
        (EditStatus.APPROVED, EditStatus.DEPLOYED),
    ],
)
def test_allowed_transitions(current: EditStatus, new: EditStatus) -> None:
    ensure_transition(current, new)


@pytest.mark.parametrize(
    ("current", "new"),
    [
        (EditStatus.PENDING, EditStatus.DEPLOYED),
        (EditStatus.APPROVED, EditStatus.REJECTED),
        (EditStatus.REJECTED, EditStatus.APPROVED),
        (EditStatus.DEPLOYED, EditStatus.APPROVED),
        (EditStatus.DEPLOYED, EditStatus.PENDING),
    ],
)
def test_forbidden_transitions(current: EditStatus, new: EditStatus) -> None:
    with pytest.raises(InvalidStateError):
        ensure_transition(current, new)


def test_terminal_statuses() -> None:
    assert EditStatus.REJECTED.is_terminal()
    assert EditStatus.DEPLOYED.is_terminal()
    assert not EditStatus.APPROVED.is_terminal()


@pytest.mark.parametrize("character_id", ["Kafka", "../kafka", "kafka.ts", "-kafka", ""])
def test_invalid_character_ids(character_id: str) -> None:
    with pytest.raises(ValidationError):
        validate_character_id(character_id)


def test_edit_requires_payload_unless_rejected() -> None:
    with pytest.raises(ValidationError):
        _edit(payload=None)

    rejected = _edit(EditStatus.REJECTED, payload=None)
    assert rejected.payload is None


def test_edit_payload_round_trip() -> None:
    edit = _edit(
        editor_id="editor-7",
        created_at=NOW,
        tier_edits={"moc": {"DPS": "T0"}},
        change_summary="Lower E1 penalty",
    )

    row = edit.to_payload()
    restored = Edit.from_payload(json.loads(json.dumps(row)))

    assert row["character_id"] == "kafka"
    assert row["character_data"] is None
    assert row["field_changes"] == {"investment.eidolons.0.penalty": -10}
    assert row["status"] == "approved"
    assert restored == edit
    assert restored.has_tier_edits


def test_from_payload_reads_legacy_full_record_rows() -> None:
    edit = Edit.from_payload(
        {
            "id": 9,
            "character_id": "kafka",
            "character_data": {"id": "kafka", "name": "Kafka"},
            "field_changes": None,
            "tier_edits": {"moc": {}, "pf": None},
            "status": "approved",
            "created_at": "2024-05-01T12:00:00Z",
        }
    )

    assert edit.payload == FullReplace({"id": "kafka", "name": "Kafka"})
    assert edit.created_at == NOW
    assert edit.tier_edits == {}
    assert not edit.has_tier_edits


@pytest.mark.parametrize(
    "row",
    [
        {"id": "5", "character_id": "kafka", "field_changes": {}},
        {"id": 5, "character_id": "kafka", "field_changes": {}, "character_data": {}},
        {"id": 5, "character_id": "kafka", "field_changes": ["a.b"]},
        {"id": 5, "character_id": "kafka", "field_changes": {}, "status": "merged"},
        {"id": 5, "character_id": "kafka", "field_changes": {}, "tier_edits": {"zz": {}}},
        {"id": 5, "character_id": "kafka", "status": "approved"},
    ],
)
def test_from_payload_rejects_invalid_rows(row: dict) -> None:
    with pytest.raises(ValidationError):
        Edit.from_payload(row)


def test_update_status_records_review() -> None:
    store = InMemoryEditStore([_edit(EditStatus.PENDING)])

    approved = store.update_status(5, EditStatus.APPROVED, reviewer_id="admin-1", at=NOW)

    assert approved.status is EditStatus.APPROVED
    assert store.get(5).reviewer_id == "admin-1"
    assert store.get(5).reviewed_at == NOW
    with pytest.raises(InvalidStateError):
        store.update_status(5, EditStatus.DEPLOYED, reviewer_id="admin-1", at=NOW)
    with pytest.raises(InvalidStateError):
        store.update_status(5, EditStatus.REJECTED, reviewer_id="admin-1", at=NOW)


def test_mark_deployed_is_idempotent_for_the_same_revision() -> None:
    store = InMemoryEditStore([_edit()])

    first = store.mark_deployed(5, revision="abc123", reviewer_id="admin-1", deployed_at=NOW)
    second = store.mark_deployed(
        5, revision="abc123", reviewer_id="admin-2", deployed_at=datetime.now(timezone.utc)
    )

    assert first.status is EditStatus.DEPLOYED
    assert second == first
    assert store.get(5).commit_revision == "abc123"
    assert store.get(5).reviewer_id == "admin-1"

    with pytest.raises(InvalidStateError):
        store.mark_deployed(5, revision="other", reviewer_id="admin-1", deployed_at=NOW)


@pytest.mark.parametrize("status", [EditStatus.PENDING, EditStatus.REJECTED])
def test_mark_deployed_requires_approval(status: EditStatus) -> None:
    store = InMemoryEditStore([_edit(status)])

    with pytest.raises(InvalidStateError):
        store.mark_deployed(5, revision="abc123", reviewer_id="admin-1", deployed_at=NOW)

    assert store.get(5).status is status


def test_in_memory_store_lists_and_reports_missing_edits() -> None:
    store = InMemoryEditStore(
        [_edit(id=7), _edit(EditStatus.PENDING, id=3), _edit(id=4)]
    )

    assert [edit.id for edit in store.list_edits()] == [3, 4, 7]
    assert [edit.id for edit in store.list_edits(EditStatus.APPROVED)] == [4, 7]
    with pytest.raises(NotFoundError) as excinfo:
        store.get(99)
    assert excinfo.value.public_message == "Edit not found"


def test_file_store_persists_edits(tmp_path: Path) -> None:
    store = FileEditStore(tmp_path / "edits")
    store.save(_edit(created_at=NOW, tier_edits={"as": {"Sustain": "T1"}}))
    store.save(_edit(EditStatus.PENDING, id=2, payload=FullReplace({"id": "kafka"})))

    reopened = FileEditStore(tmp_path / "edits")
    deployed = reopened.mark_deployed(5, revision="abc123", reviewer_id="admin-1", deployed_at=NOW)

    assert FileEditStore(tmp_path / "edits").get(5) == deployed
    assert [edit.id for edit in reopened.list_edits()] == [2, 5]
    assert [edit.id for edit in reopened.list_edits(EditStatus.DEPLOYED)] == [5]
    assert sorted(path.name for path in (tmp_path / "edits").iterdir()) == ["2.json", "5.json"]
    with pytest.raises(NotFoundError):
        reopened.get(42)
