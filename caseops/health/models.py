"""Health check result models and the per-run probe context."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from caseops.config import Settings, settings
from caseops.integrity.auditor import AuditReport, IntegrityAuditor
from caseops.records import Record
from caseops.store.base import RecordStore


class Status(str, Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"
    INFO = "info"


@dataclass
class Verdict:
    """What a probe concludes; the engine turns it into a CheckResult."""

    status: Status
    message: str
    suggestion: str | None = None
    details: dict[str, Any] | None = None


@dataclass
class CheckResult:
    """Result of a single health probe."""

    name: str
    category: str
    status: Status
    message: str
    suggestion: str | None = None
    duration_ms: float = 0.0
    details: dict[str, Any] | None = None
    timestamp: str = ""

    def __post_init__(self) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d


@dataclass
class Probe:
    name: str
    category: str
    run: Callable[["ProbeContext"], Verdict]


class ProbeContext:
    """Shared state for one health run.

    The full record set and its audit are fetched lazily, at most once.
    """

    def __init__(
        self,
        store: RecordStore,
        config: Settings | None = None,
        auditor: IntegrityAuditor | None = None,
        now: datetime | None = None,
    ) -> None:
        self.store = store
        self.config = config or settings
        self.auditor = auditor or IntegrityAuditor(self.config.stale_after_days, now=now)
        self.now = now or datetime.now(timezone.utc)
        self._records: list[Record] | None = None
        self._audit: AuditReport | None = None

    @property
    def table(self) -> str:
        return self.config.primary_table

    def records(self) -> list[Record]:
        if self._records is None:
            self._records = self.store.fetch_all(self.table)
        return self._records

    def audit(self) -> AuditReport:
        if self._audit is None:
            self._audit = self.auditor.analyze(self.records())
        return self._audit
