"""Health check engine: runs the ordered probe list into one report.

Continue-on-error: a probe that raises is converted to a result and the run
moves on. Severity aggregation ignores ``info``: overall is ``fail`` if any
result failed, else ``warn`` if any warned, else ``pass``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from caseops.config import Settings, settings
from caseops.health.models import CheckResult, Probe, ProbeContext, Status, Verdict
from caseops.health.probes import DEFAULT_PROBES
from caseops.integrity.auditor import IntegrityAuditor
from caseops.store.base import RecordStore
from caseops.store.errors import SchemaError, StoreConnectionError

logger = logging.getLogger(__name__)

__all__ = ["CheckResult", "HealthCheckEngine", "HealthReport", "Status", "aggregate_status"]

BUDGET_EXHAUSTED = "skipped: health run budget exhausted"


def aggregate_status(results: list[CheckResult]) -> Status:
    statuses = {r.status for r in results}
    if Status.FAIL in statuses:
        return Status.FAIL
    if Status.WARN in statuses:
        return Status.WARN
    return Status.PASS


@dataclass
class HealthReport:
    results: list[CheckResult] = field(default_factory=list)
    duration_ms: float = 0.0
    started_at: str = ""

    @property
    def overall(self) -> Status:
        return aggregate_status(self.results)

    def counts(self) -> dict[str, int]:
        out = {s.value: 0 for s in Status}
        for r in self.results:
            out[r.status.value] += 1
        return out

    def by_category(self) -> dict[str, list[CheckResult]]:
        groups: dict[str, list[CheckResult]] = {}
        for r in self.results:
            groups.setdefault(r.category, []).append(r)
        return groups

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall": self.overall.value,
            "started_at": self.started_at,
            "duration_ms": self.duration_ms,
            "counts": self.counts(),
            "results": [r.to_dict() for r in self.results],
        }


class HealthCheckEngine:
    """Runs categorized probes against one store within a time budget."""

    def __init__(
        self,
        store: RecordStore,
        probes: list[Probe] | None = None,
        config: Settings | None = None,
        auditor: IntegrityAuditor | None = None,
        budget_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: datetime | None = None,
    ) -> None:
        self.store = store
        self.probes = probes if probes is not None else DEFAULT_PROBES
        self.config = config or settings
        self.auditor = auditor
        self.budget_seconds = budget_seconds if budget_seconds is not None else self.config.health_budget_seconds
        self._clock = clock
        self._now = now

    def run(self) -> HealthReport:
        ctx = ProbeContext(self.store, self.config, self.auditor, self._now)
        report = HealthReport(started_at=datetime.now(timezone.utc).isoformat())
        start = self._clock()

        for probe in self.probes:
            if self._clock() - start >= self.budget_seconds:
                logger.warning("Health budget of %.1fs exhausted, skipping '%s'", self.budget_seconds, probe.name)
                report.results.append(CheckResult(
                    name=probe.name, category=probe.category, status=Status.INFO, message=BUDGET_EXHAUSTED,
                ))
                continue
            report.results.append(self._run_probe(probe, ctx))

        report.duration_ms = round((self._clock() - start) * 1000, 1)
        logger.info("Health run finished: %s in %.0fms %s", report.overall.value, report.duration_ms, report.counts())
        return report

    def _run_probe(self, probe: Probe, ctx: ProbeContext) -> CheckResult:
        t0 = time.perf_counter()
        try:
            verdict = probe.run(ctx)
        except SchemaError as e:
            optional = e.table in self.config.optional_tables
            verdict = Verdict(
                Status.INFO if optional else Status.WARN,
                f"Schema error: {e}",
                suggestion=None if optional else "Apply the database migrations",
            )
        except StoreConnectionError as e:
            verdict = Verdict(Status.FAIL, f"Store unreachable: {e}",
                              suggestion="Check CASEOPS_STORE_URL and network access")
        except Exception as e:
            logger.exception("Probe '%s' crashed", probe.name)
            verdict = Verdict(Status.FAIL, f"Error: {type(e).__name__}: {e}")

        result = CheckResult(
            name=probe.name,
            category=probe.category,
            status=verdict.status,
            message=verdict.message,
            suggestion=verdict.suggestion,
            duration_ms=round((time.perf_counter() - t0) * 1000, 1),
            details=verdict.details,
        )
        logger.debug("[%s] %s -> %s (%s)", result.category, result.name, result.status.value, result.message)
        return result
