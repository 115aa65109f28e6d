"""Pydantic models for backup files on disk."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, model_validator

SCHEMA_VERSION = "2.0"


class BackupFormatError(Exception):
    """Raised when a backup file is unreadable or structurally invalid."""


class BackupMetadata(BaseModel):
    schema_version: str = SCHEMA_VERSION
    created_at: str
    created_by: str = "caseops"
    tables: dict[str, int]
    checksum: str
    checksum_algorithm: str = "sha256"
    skipped_tables: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy(cls, values: Any) -> Any:
        """Normalize the 1.x layout (camelCase keys, tables as a list)."""
        if not isinstance(values, dict) or "createdAt" not in values:
            return values
        tables = values.get("tables") or []
        if isinstance(tables, list):
            tables = {t["name"]: int(t.get("count") or 0) for t in tables if isinstance(t, dict) and "name" in t}
        return {
            "schema_version": str(values.get("version", "1.0.0")),
            "created_at": values["createdAt"],
            "created_by": values.get("createdBy") or "legacy",
            "tables": tables,
            "checksum": values.get("checksum", ""),
            "checksum_algorithm": "legacy",
        }


class BackupFile(BaseModel):
    metadata: BackupMetadata
    data: dict[str, list[dict[str, Any]]]
