"""Tests for the in-memory record store."""

from __future__ import annotations

import pytest

from conftest import make_record
from caseops.store import Filter, MemoryRecordStore, UpsertOutcome
from caseops.store.errors import (
    RecordValidationError,
    SchemaError,
    StoreConnectionError,
    StoreRequestError,
)

T = "service_requests"


class TestFilter:
    def test_rejects_unknown_op(self) -> None:
        with pytest.raises(ValueError):
            Filter("status", "like", "x")


class TestQuery:
    def test_filter_order_and_page(self, store: MemoryRecordStore) -> None:
        for days, status in ((3, "pending"), (2, "completed"), (1, "pending")):
            store.insert(T, make_record(days_ago=days, status=status))

        rows, total = store.query(T, filters=[Filter("status", "eq", "pending")], order="created_at", descending=True)
        assert total == 2
        assert rows[0]["created_at"] > rows[1]["created_at"]

        page, total = store.query(T, order="created_at", offset=1, limit=1)
        assert total == 3
        assert len(page) == 1
        assert page[0]["status"] == "completed"

    def test_search_is_case_insensitive(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(first_name="Beatriz"))
        store.insert(T, make_record(description="Problema no SERVIDOR"))
        assert store.query(T, search="beatriz")[1] == 1
        assert store.query(T, search="servidor")[1] == 1

    def test_is_null_filter(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(completed_at=None))
        store.insert(T, make_record(completed_at="2025-01-01T00:00:00+00:00"))
        assert store.count(T, [Filter("completed_at", "is", "null")]) == 1

    def test_returned_rows_are_copies(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(id="x"))
        rows = store.fetch_all(T)
        rows[0]["status"] = "changed"
        assert store.rows(T)[0]["status"] == "pending"


class TestWrites:
    def test_upsert_inserts_then_skips(self, store: MemoryRecordStore) -> None:
        record = make_record(id="a")
        assert store.upsert(T, record) is UpsertOutcome.INSERTED
        assert store.upsert(T, dict(record, status="completed")) is UpsertOutcome.SKIPPED
        assert store.rows(T)[0]["status"] == "pending"

    def test_upsert_requires_key(self, store: MemoryRecordStore) -> None:
        with pytest.raises(RecordValidationError):
            store.upsert(T, {"email": "x@y.com"})

    def test_update_and_delete(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(id="a"))
        store.update(T, "a", {"priority": "high"})
        assert store.rows(T)[0]["priority"] == "high"
        store.delete(T, "a")
        assert store.count(T) == 0

    def test_duplicate_insert_rejected(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(id="a"))
        with pytest.raises(StoreRequestError):
            store.insert(T, make_record(id="a"))


class TestFailureModes:
    def test_missing_table(self, store: MemoryRecordStore) -> None:
        with pytest.raises(SchemaError) as exc:
            store.count("nope")
        assert exc.value.table == "nope"

    def test_marked_missing(self, store: MemoryRecordStore) -> None:
        store.missing_tables.add(T)
        with pytest.raises(SchemaError):
            store.fetch_all(T)

    def test_offline(self, store: MemoryRecordStore) -> None:
        store.offline = True
        with pytest.raises(StoreConnectionError):
            store.query(T)

    def test_fail_ids(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(id="bad"))
        store.fail_ids.add("bad")
        with pytest.raises(StoreRequestError):
            store.update(T, "bad", {"status": "pending"})
