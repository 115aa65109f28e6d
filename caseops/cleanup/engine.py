"""Cleanup engine: two-phase analysis and confirmed correction.

``analyze()`` is read-only and is the whole of a dry run. ``execute()``
mutates only after the ConfirmationPort says yes (or ``force``), and never
stops on a single failed record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from caseops.config import settings
from caseops.integrity.auditor import AuditReport, IntegrityAuditor
from caseops.ports import ConfirmationPort
from caseops.records import DEFAULT_PRIORITY, DEFAULT_STATUS, Record
from caseops.store.base import RecordStore

logger = logging.getLogger(__name__)

FIX_CATEGORIES = ("invalid_status", "invalid_priority")
DELETE_CATEGORIES = ("stale_completed", "cancelled", "duplicates")
CATEGORIES = FIX_CATEGORIES + DELETE_CATEGORIES


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass
class CleanupOptions:
    remove_stale: bool = False
    remove_cancelled: bool = False
    remove_duplicates: bool = True


@dataclass
class CleanupAction:
    kind: str  # "fix" | "delete"
    category: str
    record_id: Any
    fields: dict[str, Any] | None = None


@dataclass
class CategoryCounts:
    fixed: int = 0
    removed: int = 0
    errored: int = 0


@dataclass
class CleanupResult:
    categories: dict[str, CategoryCounts] = field(
        default_factory=lambda: {c: CategoryCounts() for c in CATEGORIES}
    )
    cancelled: bool = False
    errors: list[tuple[Any, str]] = field(default_factory=list)

    @property
    def fixed(self) -> int:
        return sum(c.fixed for c in self.categories.values())

    @property
    def removed(self) -> int:
        return sum(c.removed for c in self.categories.values())

    @property
    def errored(self) -> int:
        return sum(c.errored for c in self.categories.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "cancelled": self.cancelled,
            "totals": {"fixed": self.fixed, "removed": self.removed, "errored": self.errored},
            "categories": {k: vars(v) for k, v in self.categories.items()},
        }


# ── Engine ───────────────────────────────────────────────────────────────────


class CleanupEngine:
    def __init__(
        self,
        store: RecordStore,
        confirm: ConfirmationPort,
        auditor: IntegrityAuditor | None = None,
        table: str | None = None,
    ) -> None:
        self.store = store
        self.confirm = confirm
        self.auditor = auditor or IntegrityAuditor()
        self.table = table or settings.primary_table

    def analyze(self) -> AuditReport:
        """Fetch every record, oldest first, and audit it. Never mutates."""
        records = self.store.fetch_all(self.table, order="created_at")
        return self.auditor.analyze(records)

    def plan(self, report: AuditReport, options: CleanupOptions) -> list[CleanupAction]:
        """Turn audit partitions into actions.

        A record is deleted at most once, and a record scheduled for
        deletion is never also fixed.
        """
        actions: list[CleanupAction] = []
        deleting: set[Any] = set()

        selected: list[tuple[str, list[Record]]] = []
        if options.remove_stale:
            selected.append(("stale_completed", report.stale_completed))
        if options.remove_cancelled:
            selected.append(("cancelled", report.cancelled))
        if options.remove_duplicates:
            selected.append(("duplicates", report.duplicates))

        for category, records in selected:
            for record in records:
                rid = record.get("id")
                if rid is None or rid in deleting:
                    continue
                deleting.add(rid)
                actions.append(CleanupAction("delete", category, rid))

        fixes = (
            ("invalid_status", report.invalid_status, {"status": DEFAULT_STATUS}),
            ("invalid_priority", report.invalid_priority, {"priority": DEFAULT_PRIORITY}),
        )
        for category, records, fields in fixes:
            for record in records:
                rid = record.get("id")
                if rid is None or rid in deleting:
                    continue
                actions.append(CleanupAction("fix", category, rid, dict(fields)))

        return actions

    def execute(self, report: AuditReport, options: CleanupOptions, force: bool = False) -> CleanupResult:
        result = CleanupResult()
        actions = self.plan(report, options)
        if not actions:
            logger.info("Nothing to clean up in %s", self.table)
            return result

        n_fix = sum(1 for a in actions if a.kind == "fix")
        n_del = len(actions) - n_fix
        if not force and not self.confirm.ask(f"Apply {n_fix} fixes and {n_del} deletions to '{self.table}'?"):
            logger.info("Cleanup declined by operator")
            result.cancelled = True
            return result

        for action in actions:
            counts = result.categories[action.category]
            try:
                if action.kind == "fix":
                    self.store.update(self.table, action.record_id, action.fields or {})
                    counts.fixed += 1
                else:
                    self.store.delete(self.table, action.record_id)
                    counts.removed += 1
            except Exception as e:
                counts.errored += 1
                result.errors.append((action.record_id, str(e)))
                logger.warning("Cleanup %s of %s failed: %s", action.kind, action.record_id, e)

        logger.info(
            "Cleanup finished: %d fixed, %d removed, %d errored",
            result.fixed, result.removed, result.errored,
        )
        return result
