"""Test configuration for the Starguide edit deployment project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import copy
from collections.abc import Mapping, Sequence
from typing import Any

import pytest

from starguide.auth import Actor, Role
from starguide.codec import encode_record
from starguide.deployment import DeploymentOrchestrator
from starguide.edits import Edit, EditStatus, FieldPatch, InMemoryEditStore
from starguide.repository import InMemoryContentRepository

KAFKA_PATH = "frontend/src/data/characters/kafka.ts"

KAFKA_RECORD: dict[str, Any] = {
    "id": "kafka",
    "name": "Kafka",
    "element": "Lightning",
    "path": "Nihility",
    "rarity": 5,
    "roles": ["DPS", "Sub-DPS"],
    "description": "DoT detonator who triggers\nallied damage over time.",
    "labels": ["dot", "follow-up"],
    "investment": {
        "investmentPriority": "medium",
        "minimumViable": "E0S1",
        "eidolons": [
            {"level": 1, "penalty": -5, "description": "Extra DoT vulnerability."},
            {"level": 2, "penalty": 0},
        ],
        "lightCones": [
            {
                "id": "patience-is-all-you-need",
                "name": "Patience Is All You Need",
                "rarity": 5,
                "isSignature": True,
                "penalties": {"s1": 0, "s5": 0},
            }
        ],
    },
    "baseTeammates": {
        "dps": [],
        "amplifiers": [
            {"id": "black-swan", "rating": 10, "reason": "Best DoT partner."},
        ],
        "sustains": [{"id": "huohuo", "rating": 8, "reason": "Energy for Kafka's 'ult'."}],
    },
    "compositions": [],
    "restrictions": None,
    "multiplier": 1.25,
}


class FakeResponse:
    """Minimal stand-in for :class:`requests.Response`."""

    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        headers: Mapping[str, str] | None = None,
        reason: str = "",
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = dict(headers or {})
        self.reason = reason

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Session recording every request and replaying queued responses."""

    def __init__(self, responses: Sequence[FakeResponse | Exception] | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self._responses: list[FakeResponse | Exception] = list(responses or [])

    def queue(self, response: FakeResponse | Exception) -> None:
        self._responses.append(response)

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self._responses:
            raise AssertionError("FakeSession expected a queued response but none remain")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture()
def kafka_record() -> dict[str, Any]:
    """Return a fresh copy of the sample Kafka record."""

    return copy.deepcopy(KAFKA_RECORD)


@pytest.fixture()
def admin() -> Actor:
    return Actor(id="admin-1", role=Role.ADMIN, email="admin@example.com")


@pytest.fixture()
def content_repository(kafka_record: dict[str, Any]) -> InMemoryContentRepository:
    return InMemoryContentRepository({KAFKA_PATH: encode_record(kafka_record)})


@pytest.fixture()
def edit_store() -> InMemoryEditStore:
    return InMemoryEditStore(
        [
            Edit(
                id=5,
                target_id="kafka",
                status=EditStatus.APPROVED,
                payload=FieldPatch({"investment.eidolons.0.penalty": -10}),
                editor_id="editor-7",
                change_summary="Lower E1 penalty",
            )
        ]
    )


@pytest.fixture()
def orchestrator(
    edit_store: InMemoryEditStore, content_repository: InMemoryContentRepository
) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(edit_store, content_repository)


__all__ = ["FakeResponse", "FakeSession", "KAFKA_PATH", "KAFKA_RECORD"]
