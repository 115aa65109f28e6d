"""In-memory record store with the same semantics as the HTTP adapter.

Used by the test-suite and by ``--store=memory`` for offline dry runs.
Tables can be marked missing, the whole store can be taken offline, and
chosen ids can be made to fail on write.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from typing import Any

from caseops.records import SEARCH_COLUMNS, Record
from caseops.store.base import Filter, RecordStore, UpsertOutcome
from caseops.store.errors import (
    RecordValidationError,
    SchemaError,
    StoreConnectionError,
    StoreRequestError,
)

logger = logging.getLogger(__name__)


def _coerce_is(value: Any) -> Any:
    if isinstance(value, str):
        return {"null": None, "true": True, "false": False}.get(value.lower(), value)
    return value


def _matches(record: Record, f: Filter) -> bool:
    actual = record.get(f.column)
    if f.op == "is":
        return actual is _coerce_is(f.value) or actual == _coerce_is(f.value)
    if f.op == "eq":
        return actual == f.value
    if f.op == "neq":
        return actual != f.value
    if actual is None:
        return False
    try:
        if f.op == "lt":
            return actual < f.value
        if f.op == "lte":
            return actual <= f.value
        if f.op == "gt":
            return actual > f.value
        return actual >= f.value
    except TypeError:
        return False


def _matches_search(record: Record, term: str) -> bool:
    needle = term.lower()
    return any(needle in str(record.get(col) or "").lower() for col in SEARCH_COLUMNS)


class MemoryRecordStore(RecordStore):
    """Dict-of-lists store. Rows keep insertion order."""

    name = "memory"

    def __init__(self, tables: dict[str, list[Record]] | None = None) -> None:
        self._tables: dict[str, list[Record]] = {
            name: [dict(r) for r in rows] for name, rows in (tables or {}).items()
        }
        self._lock = threading.Lock()
        self.offline = False
        self.missing_tables: set[str] = set()
        self.fail_ids: set[Any] = set()
        self.calls: list[tuple[str, str]] = []

    # ── Test helpers ─────────────────────────────────────────────────────

    def create_table(self, table: str, rows: list[Record] | None = None) -> None:
        with self._lock:
            self._tables[table] = [dict(r) for r in rows or []]

    def rows(self, table: str) -> list[Record]:
        """Direct copy of a table's rows, bypassing offline/missing flags."""
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    # ── Internals ────────────────────────────────────────────────────────

    def _table(self, op: str, table: str) -> list[Record]:
        self.calls.append((op, table))
        if self.offline:
            raise StoreConnectionError("Record store is offline or unreachable")
        if table in self.missing_tables or table not in self._tables:
            raise SchemaError(table, f"relation \"{table}\" does not exist")
        return self._tables[table]

    def _check_writable(self, record_id: Any) -> None:
        if record_id in self.fail_ids:
            raise StoreRequestError(500, f"write rejected for id {record_id}")

    # ── Reads ────────────────────────────────────────────────────────────

    def query(
        self,
        table: str,
        filters: list[Filter] | None = None,
        order: str | None = None,
        descending: bool = False,
        offset: int = 0,
        limit: int | None = None,
        search: str | None = None,
    ) -> tuple[list[Record], int]:
        with self._lock:
            rows = [r for r in self._table("query", table) if all(_matches(r, f) for f in filters or [])]
            if search:
                rows = [r for r in rows if _matches_search(r, search)]
            if order:
                present = [r for r in rows if r.get(order) is not None]
                absent = [r for r in rows if r.get(order) is None]
                present.sort(key=lambda r: r[order], reverse=descending)
                rows = present + absent
            total = len(rows)
            end = None if limit is None else offset + limit
            return copy.deepcopy(rows[offset:end]), total

    def count(self, table: str, filters: list[Filter] | None = None) -> int:
        _, total = self.query(table, filters=filters, limit=0)
        return total

    def fetch_all(
        self, table: str, order: str | None = "created_at", descending: bool = False,
    ) -> list[Record]:
        rows, _ = self.query(table, order=order, descending=descending)
        return rows

    # ── Writes ───────────────────────────────────────────────────────────

    def insert(self, table: str, record: Record) -> Record:
        with self._lock:
            rows = self._table("insert", table)
            row = dict(record)
            row.setdefault("id", str(uuid.uuid4()))
            self._check_writable(row["id"])
            if any(r.get("id") == row["id"] for r in rows):
                raise StoreRequestError(409, f"duplicate key value: id={row['id']}")
            rows.append(row)
            return copy.deepcopy(row)

    def update(self, table: str, record_id: Any, fields: dict[str, Any]) -> None:
        with self._lock:
            rows = self._table("update", table)
            self._check_writable(record_id)
            for row in rows:
                if row.get("id") == record_id:
                    row.update(fields)

    def delete(self, table: str, record_id: Any) -> None:
        with self._lock:
            rows = self._table("delete", table)
            self._check_writable(record_id)
            rows[:] = [r for r in rows if r.get("id") != record_id]

    def upsert(self, table: str, record: Record, conflict_key: str = "id") -> UpsertOutcome:
        key = record.get(conflict_key)
        if key in (None, ""):
            raise RecordValidationError(f"Record has no '{conflict_key}'")
        with self._lock:
            rows = self._table("upsert", table)
            self._check_writable(key)
            if any(r.get(conflict_key) == key for r in rows):
                return UpsertOutcome.SKIPPED
            rows.append(dict(record))
            return UpsertOutcome.INSERTED
