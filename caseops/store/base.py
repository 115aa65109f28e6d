"""Abstract record store capability.

Engines depend only on this interface. One instance is built at process start
and injected everywhere; tests swap in ``MemoryRecordStore``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from caseops.records import Record

FILTER_OPS = ("eq", "neq", "lt", "lte", "gt", "gte", "is")


@dataclass(frozen=True)
class Filter:
    """A single column predicate, e.g. ``Filter("status", "eq", "pending")``."""

    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op: {self.op}. Must be one of {FILTER_OPS}")


class UpsertOutcome(str, Enum):
    INSERTED = "inserted"
    SKIPPED = "skipped"


class RecordStore:
    """CRUD + query capability over named tables.

    Implementations raise ``StoreConnectionError`` when unreachable and
    ``SchemaError`` when a table or column is absent.
    """

    name: str = "abstract"

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
        """Return one page of matching records plus the total match count."""
        raise NotImplementedError

    def count(self, table: str, filters: list[Filter] | None = None) -> int:
        raise NotImplementedError

    def fetch_all(
        self, table: str, order: str | None = "created_at", descending: bool = False,
    ) -> list[Record]:
        raise NotImplementedError

    def insert(self, table: str, record: Record) -> Record:
        raise NotImplementedError

    def update(self, table: str, record_id: Any, fields: dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, table: str, record_id: Any) -> None:
        raise NotImplementedError

    def upsert(self, table: str, record: Record, conflict_key: str = "id") -> UpsertOutcome:
        """Insert ``record`` unless a row with the same key exists (then skip)."""
        raise NotImplementedError

    def close(self) -> None:
        pass
