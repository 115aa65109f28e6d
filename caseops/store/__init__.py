"""Record store capability and its adapters."""

from __future__ import annotations

from caseops.config import settings
from caseops.store.base import Filter, RecordStore, UpsertOutcome
from caseops.store.errors import (
    RecordValidationError,
    SchemaError,
    StoreConnectionError,
    StoreError,
    StoreRequestError,
)
from caseops.store.memory import MemoryRecordStore
from caseops.store.rest import RestRecordStore

__all__ = [
    "Filter",
    "MemoryRecordStore",
    "RecordStore",
    "RecordValidationError",
    "RestRecordStore",
    "SchemaError",
    "StoreConnectionError",
    "StoreError",
    "StoreRequestError",
    "UpsertOutcome",
    "build_store",
]


def build_store(kind: str = "rest") -> RecordStore:
    """Construct the one store instance a command will use."""
    if kind == "memory":
        store = MemoryRecordStore()
        for table in settings.required_tables:
            store.create_table(table)
        return store
    if kind == "rest":
        return RestRecordStore(
            base_url=settings.store_url,
            api_key=settings.store_key,
            service_key=settings.service_role_key,
            timeout=settings.store_timeout,
        )
    raise ValueError(f"Unknown store kind: {kind}")
