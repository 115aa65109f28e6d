"""Restore manager: verifies a backup and upserts it back, one record at a time.

A checksum mismatch is a warning that needs an explicit override. Live
restores are idempotent: rows whose id already exists are skipped, so
restoring the same file twice inserts nothing the second time.
"""

from __future__ import annotations

import gzip
import json
import logging
import time
import zlib
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from caseops.backup.checksum import compute_checksum
from caseops.backup.models import BackupFile, BackupFormatError
from caseops.config import settings
from caseops.ports import ConfirmationPort
from caseops.store.base import RecordStore, UpsertOutcome
from caseops.store.errors import SchemaError

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass
class ChecksumVerdict:
    ok: bool
    algorithm: str
    expected: str
    actual: str


@dataclass
class TableOutcome:
    planned: int = 0
    inserted: int = 0
    skipped: int = 0
    errored: int = 0


@dataclass
class RestoreSummary:
    path: Path
    tables: dict[str, TableOutcome] = field(default_factory=dict)
    checksum_ok: bool = True
    dry_run: bool = False
    cancelled: bool = False
    override_declined: bool = False
    errors: list[tuple[str, Any, str]] = field(default_factory=list)

    @property
    def planned(self) -> int:
        return sum(t.planned for t in self.tables.values())

    @property
    def inserted(self) -> int:
        return sum(t.inserted for t in self.tables.values())

    @property
    def skipped(self) -> int:
        return sum(t.skipped for t in self.tables.values())

    @property
    def errored(self) -> int:
        return sum(t.errored for t in self.tables.values())

    @property
    def failed(self) -> bool:
        return self.override_declined or self.errored > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "checksum_ok": self.checksum_ok,
            "dry_run": self.dry_run,
            "cancelled": self.cancelled,
            "totals": {
                "planned": self.planned, "inserted": self.inserted,
                "skipped": self.skipped, "errored": self.errored,
            },
            "tables": {k: vars(v) for k, v in self.tables.items()},
        }


# ── Manager ──────────────────────────────────────────────────────────────────


class RestoreManager:
    def __init__(
        self,
        store: RecordStore,
        confirm: ConfirmationPort,
        delay_ms: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.confirm = confirm
        self.delay_ms = delay_ms if delay_ms is not None else settings.restore_delay_ms
        self._sleep = sleep

    def load(self, path: Path | str) -> BackupFile:
        """Parse a plain or gzip backup file. Raises BackupFormatError."""
        path = Path(path)
        try:
            raw = path.read_bytes()
            if raw[:2] == GZIP_MAGIC:
                raw = gzip.decompress(raw)
            doc = json.loads(raw.decode("utf-8"))
        except (OSError, EOFError, zlib.error, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BackupFormatError(f"Cannot read backup {path}: {e}") from e
        if not isinstance(doc, dict) or "metadata" not in doc or "data" not in doc:
            raise BackupFormatError(f"{path} is not a backup file (needs 'metadata' and 'data')")
        try:
            return BackupFile.model_validate(doc)
        except ValidationError as e:
            raise BackupFormatError(f"Invalid backup structure in {path}: {e}") from e

    def verify(self, backup: BackupFile) -> ChecksumVerdict:
        algorithm = backup.metadata.checksum_algorithm
        expected = backup.metadata.checksum
        try:
            actual = compute_checksum(backup.data, algorithm)
        except ValueError as e:
            logger.warning("%s", e)
            actual = ""
        return ChecksumVerdict(ok=bool(actual) and actual == expected, algorithm=algorithm,
                               expected=expected, actual=actual)

    def restore(
        self, path: Path | str, dry_run: bool = False, force: bool = False,
    ) -> RestoreSummary:
        path = Path(path)
        backup = self.load(path)
        verdict = self.verify(backup)
        summary = RestoreSummary(path=path, checksum_ok=verdict.ok, dry_run=dry_run)
        for table, rows in backup.data.items():
            summary.tables[table] = TableOutcome(planned=len(rows))

        if dry_run:
            if not verdict.ok:
                logger.warning("Checksum mismatch in %s (%s)", path.name, verdict.algorithm)
            return summary

        confirmed = force
        if not verdict.ok:
            logger.warning(
                "Checksum mismatch in %s: expected %s, got %s",
                path.name, verdict.expected[:16], verdict.actual[:16],
            )
            if not force:
                if not self.confirm.ask("Checksum does not match. The file may be corrupted. Restore anyway?"):
                    summary.cancelled = True
                    summary.override_declined = True
                    return summary
                confirmed = True

        if not confirmed and not self.confirm.ask(
            f"Restore {summary.planned} records from {path.name}? Existing ids are left untouched."
        ):
            summary.cancelled = True
            return summary

        for table, rows in backup.data.items():
            self._restore_table(table, rows, summary)

        logger.info(
            "Restore finished: %d inserted, %d skipped, %d errored",
            summary.inserted, summary.skipped, summary.errored,
        )
        return summary

    def _restore_table(self, table: str, rows: list[dict[str, Any]], summary: RestoreSummary) -> None:
        outcome = summary.tables[table]
        for i, record in enumerate(rows):
            try:
                result = self.store.upsert(table, record, conflict_key="id")
            except SchemaError as e:
                remaining = len(rows) - i
                outcome.errored += remaining
                summary.errors.append((table, None, str(e)))
                logger.warning("Table %s unavailable, %d records not restored: %s", table, remaining, e)
                return
            except Exception as e:
                outcome.errored += 1
                summary.errors.append((table, record.get("id"), str(e)))
                logger.warning("Restore of %s/%s failed: %s", table, record.get("id"), e)
            else:
                if result is UpsertOutcome.INSERTED:
                    outcome.inserted += 1
                else:
                    outcome.skipped += 1
            if self.delay_ms > 0:
                self._sleep(self.delay_ms / 1000)
