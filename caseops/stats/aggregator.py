"""Pure statistics over a full record set.

Every function takes the records as returned by the store and never touches
the store itself. ``now`` and ``tz`` are injectable for deterministic output;
by default timestamps are bucketed in the configured display timezone.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from caseops.config import settings
from caseops.records import PRIORITIES, SERVICE_TYPES, STATUSES, Record, try_parse_timestamp

logger = logging.getLogger(__name__)

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def display_tz() -> tzinfo:
    try:
        return ZoneInfo(settings.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", settings.timezone)
        return timezone.utc


def _local(value: Any, tz: tzinfo) -> datetime | None:
    dt = try_parse_timestamp(value)
    return dt.astimezone(tz) if dt else None


def _now(now: datetime | None, tz: tzinfo) -> datetime:
    return (now or datetime.now(timezone.utc)).astimezone(tz)


# ── Distributions ────────────────────────────────────────────────────────────


def count_by(records: Iterable[Record], column: str, keys: Iterable[str] = ()) -> dict[str, int]:
    """Count records per value of ``column``.

    Every key in ``keys`` appears in the result (possibly with 0); values
    outside ``keys`` are appended in first-seen order.
    """
    counts: dict[str, int] = {k: 0 for k in keys}
    for r in records:
        value = r.get(column)
        label = "unknown" if value in (None, "") else str(value)
        counts[label] = counts.get(label, 0) + 1
    return counts


def status_distribution(records: list[Record]) -> dict[str, int]:
    return count_by(records, "status", STATUSES)


def priority_distribution(records: list[Record]) -> dict[str, int]:
    return count_by(records, "priority", PRIORITIES)


def service_type_distribution(records: list[Record]) -> dict[str, int]:
    counts = count_by(records, "service_type", SERVICE_TYPES)
    return {k: v for k, v in counts.items() if v}


def weekday_histogram(records: list[Record], tz: tzinfo | None = None) -> dict[str, int]:
    tz = tz or display_tz()
    hist = {day: 0 for day in WEEKDAYS}
    for r in records:
        dt = _local(r.get("created_at"), tz)
        if dt:
            hist[WEEKDAYS[dt.weekday()]] += 1
    return hist


def hourly_histogram(records: list[Record], tz: tzinfo | None = None) -> list[int]:
    tz = tz or display_tz()
    hist = [0] * 24
    for r in records:
        dt = _local(r.get("created_at"), tz)
        if dt:
            hist[dt.hour] += 1
    return hist


# ── Resolution time ──────────────────────────────────────────────────────────


@dataclass
class ResolutionStats:
    count: int
    avg_hours: float
    min_hours: float
    max_hours: float


def resolution_time(records: list[Record]) -> ResolutionStats | None:
    """Hours from created_at to completed_at over completed records."""
    hours: list[float] = []
    for r in records:
        if r.get("status") != "completed" or not r.get("completed_at"):
            continue
        created = try_parse_timestamp(r.get("created_at"))
        completed = try_parse_timestamp(r.get("completed_at"))
        if created and completed:
            hours.append((completed - created).total_seconds() / 3600)
    if not hours:
        return None
    return ResolutionStats(
        count=len(hours),
        avg_hours=round(sum(hours) / len(hours), 2),
        min_hours=round(min(hours), 2),
        max_hours=round(max(hours), 2),
    )


# ── Trends ───────────────────────────────────────────────────────────────────


def daily_trend(
    records: list[Record], days: int = 14, now: datetime | None = None, tz: tzinfo | None = None,
) -> list[tuple[str, int]]:
    """Creation counts for the trailing ``days`` calendar days, oldest first."""
    tz = tz or display_tz()
    today = _now(now, tz).date()
    buckets: dict[date, int] = {today - timedelta(days=i): 0 for i in range(days - 1, -1, -1)}
    for r in records:
        dt = _local(r.get("created_at"), tz)
        if dt and dt.date() in buckets:
            buckets[dt.date()] += 1
    return [(d.isoformat(), n) for d, n in buckets.items()]


def monthly_trend(records: list[Record], tz: tzinfo | None = None) -> list[tuple[str, int]]:
    """Creation counts per ``YYYY-MM``, chronological."""
    tz = tz or display_tz()
    counts: Counter[str] = Counter()
    for r in records:
        dt = _local(r.get("created_at"), tz)
        if dt:
            counts[dt.strftime("%Y-%m")] += 1
    return sorted(counts.items())


def created_in_window(records: list[Record], days: int, now: datetime | None = None) -> int:
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    stamps = (try_parse_timestamp(r.get("created_at")) for r in records)
    return sum(1 for dt in stamps if dt and dt >= cutoff)


def _on_day(records: list[Record], column: str, day: date, tz: tzinfo) -> list[Record]:
    out = []
    for r in records:
        dt = _local(r.get(column), tz)
        if dt and dt.date() == day:
            out.append(r)
    return out


def created_today(records: list[Record], now: datetime | None = None, tz: tzinfo | None = None) -> int:
    tz = tz or display_tz()
    return len(_on_day(records, "created_at", _now(now, tz).date(), tz))


def completed_today(records: list[Record], now: datetime | None = None, tz: tzinfo | None = None) -> int:
    tz = tz or display_tz()
    done = [r for r in records if r.get("status") == "completed"]
    return len(_on_day(done, "completed_at", _now(now, tz).date(), tz))


# ── Contacts & money ─────────────────────────────────────────────────────────


def top_contacts(records: list[Record], k: int = 5) -> list[tuple[str, int]]:
    """The ``k`` emails with the most records (ties keep first-seen order)."""
    counts: Counter[str] = Counter()
    for r in records:
        email = str(r.get("email") or "").strip().lower()
        if email:
            counts[email] += 1
    return counts.most_common(k)


def completion_rate(records: list[Record]) -> float:
    """Percentage of records completed, 0.0 for an empty set."""
    if not records:
        return 0.0
    done = sum(1 for r in records if r.get("status") == "completed")
    return round(done / len(records) * 100, 1)


def total_estimated_value(records: list[Record]) -> float:
    total = 0.0
    for r in records:
        value = r.get("estimated_value")
        if value in (None, ""):
            continue
        try:
            total += float(value)
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric estimated_value on %s", r.get("id"))
    return round(total, 2)


# ── Alerts ───────────────────────────────────────────────────────────────────


@dataclass
class AlertThresholds:
    pending_backlog: int = field(default_factory=lambda: settings.pending_alert_threshold)
    urgent: int = field(default_factory=lambda: settings.urgent_alert_threshold)
    pending_age_days: int = field(default_factory=lambda: settings.pending_age_alert_days)


@dataclass
class Alert:
    level: str  # "warning" | "critical"
    code: str
    message: str
    count: int


def alerts(
    records: list[Record], thresholds: AlertThresholds | None = None, now: datetime | None = None,
) -> list[Alert]:
    """Threshold-based alerts over the current record set."""
    t = thresholds or AlertThresholds()
    now = now or datetime.now(timezone.utc)
    out: list[Alert] = []

    pending = [r for r in records if r.get("status") == "pending"]
    urgent_pending = [r for r in pending if r.get("priority") == "urgent"]
    if urgent_pending:
        level = "critical" if len(urgent_pending) > t.urgent else "warning"
        out.append(Alert(level, "urgent_pending", f"{len(urgent_pending)} urgent requests still pending", len(urgent_pending)))

    age_cutoff = now - timedelta(days=t.pending_age_days)
    aged = []
    for r in pending:
        created = try_parse_timestamp(r.get("created_at"))
        if created and created < age_cutoff:
            aged.append(r)
    if aged:
        out.append(Alert(
            "warning", "aged_pending",
            f"{len(aged)} pending requests older than {t.pending_age_days} days", len(aged),
        ))

    if len(pending) > t.pending_backlog:
        out.append(Alert(
            "critical", "pending_backlog",
            f"Pending backlog of {len(pending)} exceeds {t.pending_backlog}", len(pending),
        ))

    if records and completion_rate(records) < 50:
        out.append(Alert("warning", "low_completion", "Completion rate below 50%", len(records)))

    return out


# ── Summary ──────────────────────────────────────────────────────────────────


def summarize(
    records: list[Record],
    now: datetime | None = None,
    tz: tzinfo | None = None,
    trend_days: int = 14,
    thresholds: AlertThresholds | None = None,
) -> dict[str, Any]:
    """Bundle every statistic into one JSON-serializable dict."""
    tz = tz or display_tz()
    resolution = resolution_time(records)
    return {
        "total": len(records),
        "by_status": status_distribution(records),
        "by_priority": priority_distribution(records),
        "by_service_type": service_type_distribution(records),
        "by_weekday": weekday_histogram(records, tz),
        "by_hour": hourly_histogram(records, tz),
        "resolution": asdict(resolution) if resolution else None,
        "daily_trend": daily_trend(records, trend_days, now, tz),
        "monthly_trend": monthly_trend(records, tz),
        "top_contacts": top_contacts(records),
        "completion_rate": completion_rate(records),
        "total_estimated_value": total_estimated_value(records),
        "created_today": created_today(records, now, tz),
        "completed_today": completed_today(records, now, tz),
        "alerts": [asdict(a) for a in alerts(records, thresholds, now)],
    }
