"""Integrity auditor: partitions a record set by rule violation.

Pure and side-effect-free. Shared by the health engine and cleanup.

Partitions:
- invalid_status / invalid_priority: enum values outside the known sets
- invalid_email / invalid_phone: contact field format
- stale_completed: completed records older than ``stale_after_days``
- cancelled: every cancelled record
- duplicates: same (email, service_type, calendar day); first occurrence kept
- malformed: records whose timestamps cannot be parsed
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from caseops.config import settings
from caseops.records import PRIORITIES, STATUSES, Record, parse_timestamp

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_MIN_DIGITS = 10
PHONE_MAX_DIGITS = 13


# ── Reports ──────────────────────────────────────────────────────────────────


@dataclass
class AuditReport:
    """Violations found in one record set, keyed by partition."""

    total: int = 0
    invalid_status: list[Record] = field(default_factory=list)
    invalid_priority: list[Record] = field(default_factory=list)
    invalid_email: list[Record] = field(default_factory=list)
    invalid_phone: list[Record] = field(default_factory=list)
    stale_completed: list[Record] = field(default_factory=list)
    cancelled: list[Record] = field(default_factory=list)
    duplicates: list[Record] = field(default_factory=list)
    malformed: list[tuple[Record, str]] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "invalid_status": len(self.invalid_status),
            "invalid_priority": len(self.invalid_priority),
            "invalid_email": len(self.invalid_email),
            "invalid_phone": len(self.invalid_phone),
            "stale_completed": len(self.stale_completed),
            "cancelled": len(self.cancelled),
            "duplicates": len(self.duplicates),
            "malformed": len(self.malformed),
        }

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, **self.counts()}


@dataclass
class TimestampReport:
    total: int = 0
    updated_before_created: list[Record] = field(default_factory=list)
    future_created: list[Record] = field(default_factory=list)
    completion_mismatch: list[Record] = field(default_factory=list)
    malformed: list[tuple[Record, str]] = field(default_factory=list)

    @property
    def violation_count(self) -> int:
        return len(self.updated_before_created) + len(self.future_created) + len(self.completion_mismatch)

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "updated_before_created": len(self.updated_before_created),
            "future_created": len(self.future_created),
            "completion_mismatch": len(self.completion_mismatch),
            "malformed": len(self.malformed),
        }


# ── Field rules ──────────────────────────────────────────────────────────────


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def is_valid_phone(value: Any) -> bool:
    if value is None:
        return False
    digits = re.sub(r"\D", "", str(value))
    return PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS


def duplicate_key(record: Record) -> tuple[str, str, str]:
    """Correlation key: normalized email, service type and UTC creation day.

    Raises ValueError if ``created_at`` cannot be parsed.
    """
    email = str(record.get("email") or "").strip().lower()
    service = str(record.get("service_type") or "").strip().lower()
    day = parse_timestamp(record.get("created_at")).date().isoformat()
    return email, service, day


# ── Auditor ──────────────────────────────────────────────────────────────────


class IntegrityAuditor:
    """Scans record sets for enum, format, age and duplicate violations."""

    def __init__(self, stale_after_days: int | None = None, now: datetime | None = None) -> None:
        self.stale_after_days = stale_after_days if stale_after_days is not None else settings.stale_after_days
        self._now = now

    def now(self) -> datetime:
        return self._now or datetime.now(timezone.utc)

    def analyze(self, records: list[Record]) -> AuditReport:
        report = AuditReport(total=len(records))
        cutoff = self.now() - timedelta(days=self.stale_after_days)
        seen: set[tuple[str, str, str]] = set()

        for record in records:
            status = record.get("status")
            if status not in STATUSES:
                report.invalid_status.append(record)
            if record.get("priority") not in PRIORITIES:
                report.invalid_priority.append(record)
            if not is_valid_email(record.get("email")):
                report.invalid_email.append(record)
            if not is_valid_phone(record.get("phone")):
                report.invalid_phone.append(record)
            if status == "cancelled":
                report.cancelled.append(record)

            try:
                created = parse_timestamp(record.get("created_at"))
                key = duplicate_key(record)
            except ValueError as e:
                report.malformed.append((record, f"created_at: {e}"))
                continue

            if status == "completed" and created < cutoff:
                report.stale_completed.append(record)
            if key in seen:
                report.duplicates.append(record)
            else:
                seen.add(key)

        logger.debug("Audited %d records: %s", report.total, report.counts())
        return report

    def audit_timestamps(self, records: list[Record]) -> TimestampReport:
        """Check updated_at >= created_at, no future created_at, completion consistency."""
        report = TimestampReport(total=len(records))
        now = self.now()

        for record in records:
            try:
                created = parse_timestamp(record.get("created_at"))
            except ValueError as e:
                report.malformed.append((record, f"created_at: {e}"))
                continue

            updated_raw = record.get("updated_at")
            if updated_raw:
                try:
                    if parse_timestamp(updated_raw) < created:
                        report.updated_before_created.append(record)
                except ValueError as e:
                    report.malformed.append((record, f"updated_at: {e}"))

            if created > now:
                report.future_created.append(record)

            completed = bool(record.get("completed_at"))
            if completed != (record.get("status") == "completed"):
                report.completion_mismatch.append(record)

        return report
