"""Shared test fixtures."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from caseops.ports import ConfirmationPort
from caseops.store.memory import MemoryRecordStore

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


def make_record(days_ago: float = 1, **overrides: Any) -> dict[str, Any]:
    """A valid pending service request created ``days_ago`` before NOW."""
    n = next(_ids)
    created = (NOW - timedelta(days=days_ago)).isoformat()
    record = {
        "id": f"req-{n}",
        "first_name": "Ana",
        "last_name": f"Souza {n}",
        "email": f"ana{n}@example.com",
        "phone": "+55 11 98765-4321",
        "service_type": "Cibersegurança",
        "description": "Preciso de ajuda com a rede",
        "status": "pending",
        "priority": "normal",
        "estimated_value": 100.0,
        "notes": None,
        "assigned_to": None,
        "created_at": created,
        "updated_at": created,
        "completed_at": None,
    }
    record.update(overrides)
    return record


class ScriptedConfirmation(ConfirmationPort):
    """Returns pre-recorded answers in order; records every question asked."""

    def __init__(self, *answers: bool) -> None:
        self._answers = list(answers)
        self.questions: list[str] = []

    def ask(self, question: str) -> bool:
        self.questions.append(question)
        if not self._answers:
            return False
        return self._answers.pop(0)


@pytest.fixture
def store() -> MemoryRecordStore:
    """Memory store with the primary table and one optional table."""
    s = MemoryRecordStore()
    s.create_table("service_requests")
    s.create_table("waitlist_signups")
    return s


@pytest.fixture
def seeded_store(store: MemoryRecordStore) -> MemoryRecordStore:
    for days in (10, 5, 2):
        store.insert("service_requests", make_record(days_ago=days))
    store.insert("waitlist_signups", {"id": "w-1", "email": "fila@example.com", "created_at": NOW.isoformat()})
    return store


@pytest.fixture
def yes() -> ScriptedConfirmation:
    return ScriptedConfirmation(True, True, True)


@pytest.fixture
def no() -> ScriptedConfirmation:
    return ScriptedConfirmation(False, False, False)
