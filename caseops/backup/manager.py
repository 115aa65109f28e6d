"""Backup manager: exports tables to checksummed snapshot files.

Files are named ``backup_YYYYMMDD_HHMMSS.json[.gz]``, with a ``_N`` counter
when that name is taken. An existing file is never overwritten. Writes are
atomic and old files are rotated so that only the newest ``max_backups`` remain.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from caseops.backup.checksum import SHA256, compute_checksum
from caseops.backup.models import SCHEMA_VERSION, BackupMetadata
from caseops.config import settings
from caseops.records import Record
from caseops.store.base import RecordStore
from caseops.store.errors import SchemaError

logger = logging.getLogger(__name__)

BACKUP_GLOBS = ("backup_*.json", "backup_*.json.gz")


def _unused_path(path: Path) -> Path:
    """``path`` itself, or the first free ``stem_N`` sibling when it exists."""
    if not path.exists():
        return path
    base, dot, suffix = path.name.partition(".")
    n = 1
    while True:
        candidate = path.with_name(f"{base}_{n}{dot}{suffix}")
        if not candidate.exists():
            logger.warning("%s already exists, writing %s instead", path.name, candidate.name)
            return candidate
        n += 1


@dataclass
class BackupResult:
    path: Path
    metadata: BackupMetadata
    size_bytes: int
    rotated: list[Path] = field(default_factory=list)


@dataclass
class BackupInfo:
    path: Path
    size_bytes: int
    modified: datetime


class BackupManager:
    def __init__(
        self,
        store: RecordStore,
        backup_dir: Path | str | None = None,
        tables: list[str] | None = None,
        max_backups: int | None = None,
        compress: bool | None = None,
    ) -> None:
        self.store = store
        self.backup_dir = Path(backup_dir or settings.backup_dir)
        self.tables = tables or list(settings.backup_tables)
        self.max_backups = max_backups if max_backups is not None else settings.max_backups
        self.compress = compress if compress is not None else settings.compress_backups

    def export(
        self,
        tables: list[str] | None = None,
        compress: bool | None = None,
        output: Path | str | None = None,
        now: datetime | None = None,
    ) -> BackupResult:
        """Snapshot ``tables`` (default: all configured) into one file.

        A missing table is recorded in ``skipped_tables``; a connection
        error propagates and nothing is written.
        """
        compress = self.compress if compress is None else compress
        now = now or datetime.now(timezone.utc)

        data: dict[str, list[Record]] = {}
        skipped: list[str] = []
        for table in tables or self.tables:
            try:
                data[table] = self.store.fetch_all(table, order="created_at")
                logger.info("Exported %d rows from %s", len(data[table]), table)
            except SchemaError as e:
                logger.warning("Skipping table %s: %s", table, e)
                skipped.append(table)

        metadata = BackupMetadata(
            schema_version=SCHEMA_VERSION,
            created_at=now.isoformat(),
            tables={t: len(rows) for t, rows in data.items()},
            checksum=compute_checksum(data, SHA256),
            checksum_algorithm=SHA256,
            skipped_tables=skipped,
        )
        path = self._target_path(output, now, compress)
        body = json.dumps(
            {"metadata": metadata.model_dump(), "data": data}, ensure_ascii=False, indent=2,
        ).encode("utf-8")
        if compress:
            body = gzip.compress(body)
        self._atomic_write(path, body)
        logger.info("Backup written: %s (%d bytes)", path, len(body))

        return BackupResult(path=path, metadata=metadata, size_bytes=len(body), rotated=self.rotate())

    def _target_path(self, output: Path | str | None, now: datetime, compress: bool) -> Path:
        name = f"backup_{now.strftime('%Y%m%d_%H%M%S')}.json" + (".gz" if compress else "")
        if output is None:
            return _unused_path(self.backup_dir / name)
        out = Path(output)
        if out.is_dir():
            return _unused_path(out / name)
        return _unused_path(out)

    @staticmethod
    def _atomic_write(path: Path, body: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        try:
            tmp.write_bytes(body)
            os.replace(tmp, path)
        finally:
            tmp.unlink(missing_ok=True)

    # ── Retention ────────────────────────────────────────────────────────

    def list_backups(self) -> list[BackupInfo]:
        """Existing backup files, newest first."""
        if not self.backup_dir.is_dir():
            return []
        paths = {p for pattern in BACKUP_GLOBS for p in self.backup_dir.glob(pattern)}
        infos = []
        for p in paths:
            st = p.stat()
            infos.append(BackupInfo(p, st.st_size, datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)))
        return sorted(infos, key=lambda i: (i.modified, i.path.name), reverse=True)

    def latest(self) -> Path | None:
        backups = self.list_backups()
        return backups[0].path if backups else None

    def rotate(self) -> list[Path]:
        """Delete all but the newest ``max_backups`` files. Best effort."""
        removed: list[Path] = []
        for info in self.list_backups()[self.max_backups:]:
            try:
                info.path.unlink()
                removed.append(info.path)
                logger.info("Rotated out old backup %s", info.path.name)
            except OSError as e:
                logger.warning("Could not delete old backup %s: %s", info.path, e)
        return removed

