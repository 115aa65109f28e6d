"""Health probes: one function per check, grouped by category.

Each probe takes the run's ProbeContext and returns a Verdict. Probes may
raise store errors; the engine turns those into warn/fail results.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor

from caseops.health.models import Probe, ProbeContext, Status, Verdict
from caseops.records import EXPECTED_COLUMNS
from caseops.stats.aggregator import created_in_window
from caseops.store.base import Filter
from caseops.store.errors import SchemaError, StoreRequestError

logger = logging.getLogger(__name__)


def _ms(t0: float) -> float:
    return round((time.perf_counter() - t0) * 1000, 1)


# ── Connectivity ─────────────────────────────────────────────────────────────


def check_latency(ctx: ProbeContext) -> Verdict:
    """N round-trip samples; tiers on the average."""
    cfg = ctx.config
    samples: list[float] = []
    for _ in range(max(cfg.latency_samples, 1)):
        t0 = time.perf_counter()
        ctx.store.count(ctx.table)
        samples.append(_ms(t0))

    avg = round(sum(samples) / len(samples), 1)
    details = {"min_ms": min(samples), "avg_ms": avg, "max_ms": max(samples), "samples": len(samples)}

    if avg < cfg.latency_pass_ms:
        return Verdict(Status.PASS, f"Average latency {avg}ms", details=details)
    if avg < cfg.latency_warn_ms:
        return Verdict(
            Status.WARN, f"Average latency {avg}ms (pass < {cfg.latency_pass_ms:.0f}ms)",
            suggestion="Check network path to the store", details=details,
        )
    return Verdict(
        Status.FAIL, f"Average latency {avg}ms exceeds {cfg.latency_warn_ms:.0f}ms",
        suggestion="Store is responding too slowly; check its load and region", details=details,
    )


# ── Structure ────────────────────────────────────────────────────────────────


def check_tables(ctx: ProbeContext) -> Verdict:
    counts: dict[str, int] = {}
    missing_required: list[str] = []
    missing_optional: list[str] = []

    for table in ctx.config.required_tables:
        try:
            counts[table] = ctx.store.count(table)
        except SchemaError:
            missing_required.append(table)
    for table in ctx.config.optional_tables:
        try:
            counts[table] = ctx.store.count(table)
        except SchemaError:
            missing_optional.append(table)

    details = {"row_counts": counts, "missing_required": missing_required, "missing_optional": missing_optional}
    summary = ", ".join(f"{t}={n}" for t, n in counts.items())

    if missing_required:
        return Verdict(
            Status.FAIL, f"Missing required tables: {', '.join(missing_required)}",
            suggestion="Apply the database migrations", details=details,
        )
    if missing_optional:
        return Verdict(
            Status.INFO, f"{summary} (optional tables absent: {', '.join(missing_optional)})",
            details=details,
        )
    return Verdict(Status.PASS, summary, details=details)


def check_columns(ctx: ProbeContext) -> Verdict:
    rows, _ = ctx.store.query(ctx.table, limit=1)
    if not rows:
        return Verdict(Status.INFO, f"{ctx.table} is empty, no columns to inspect")
    missing = [c for c in EXPECTED_COLUMNS if c not in rows[0]]
    if missing:
        return Verdict(
            Status.WARN, f"Missing columns: {', '.join(missing)}",
            suggestion="Apply the database migrations", details={"missing": missing},
        )
    return Verdict(Status.PASS, f"All {len(EXPECTED_COLUMNS)} expected columns present")


# ── Performance ──────────────────────────────────────────────────────────────


def check_parallel_burst(ctx: ProbeContext) -> Verdict:
    """K concurrent reads, joined and timed as a group."""
    k = max(ctx.config.burst_size, 1)
    budget = ctx.config.burst_budget_ms

    t0 = time.perf_counter()
    with ThreadPoolExecutor(max_workers=k) as executor:
        futures = [executor.submit(ctx.store.query, ctx.table, None, None, False, 0, 1) for _ in range(k)]
        for future in futures:
            future.result()
    elapsed = _ms(t0)

    details = {"concurrency": k, "total_ms": elapsed, "budget_ms": budget}
    if elapsed <= budget:
        return Verdict(Status.PASS, f"{k} parallel reads in {elapsed}ms", details=details)
    return Verdict(
        Status.WARN, f"{k} parallel reads took {elapsed}ms (budget {budget:.0f}ms)",
        suggestion="Store may be saturated; check connection pool limits", details=details,
    )


def check_mixed_queries(ctx: ProbeContext) -> Verdict:
    budget = ctx.config.mixed_query_budget_ms
    timings: dict[str, float] = {}

    t0 = time.perf_counter()
    ctx.store.count(ctx.table)
    timings["count"] = _ms(t0)

    t1 = time.perf_counter()
    ctx.store.query(ctx.table, order="created_at", descending=True, limit=10)
    timings["recent_page"] = _ms(t1)

    t2 = time.perf_counter()
    ctx.store.query(ctx.table, filters=[Filter("status", "eq", "pending")], limit=5)
    timings["pending_page"] = _ms(t2)

    total = round(sum(timings.values()), 1)
    details = {**timings, "total_ms": total, "budget_ms": budget}
    if total <= budget:
        return Verdict(Status.PASS, f"Mixed queries in {total}ms", details=details)
    return Verdict(
        Status.WARN, f"Mixed queries took {total}ms (budget {budget:.0f}ms)",
        suggestion="Consider indexes on status and created_at", details=details,
    )


# ── Security ─────────────────────────────────────────────────────────────────


def check_access_policy(ctx: ProbeContext) -> Verdict:
    """Restrictive queries still succeed (policy sanity, not an audit)."""
    try:
        ctx.store.query(ctx.table, filters=[Filter("status", "eq", "pending")], limit=1)
        ctx.store.query(ctx.table, filters=[Filter("status", "neq", "cancelled")], limit=1)
    except StoreRequestError as e:
        if not e.is_permission_denied:
            raise
        return Verdict(
            Status.WARN, f"Filtered reads denied ({e.status_code})",
            suggestion="Review the row-level security policies for this key",
        )
    return Verdict(Status.PASS, "Filtered reads permitted")


# ── Integrity / validation / audit ───────────────────────────────────────────


def check_integrity(ctx: ProbeContext) -> Verdict:
    report = ctx.audit()
    counts = {
        "invalid_status": len(report.invalid_status),
        "invalid_priority": len(report.invalid_priority),
        "duplicates": len(report.duplicates),
    }
    problems = sum(counts.values())
    if problems:
        parts = ", ".join(f"{n} {k.replace('_', ' ')}" for k, n in counts.items() if n)
        return Verdict(
            Status.WARN, f"{problems} integrity violations: {parts}",
            suggestion="Run: caseops cleanup --dry-run", details=counts,
        )
    return Verdict(Status.PASS, f"{report.total} records, no integrity violations", details=counts)


def check_contact_fields(ctx: ProbeContext) -> Verdict:
    report = ctx.audit()
    counts = {"invalid_email": len(report.invalid_email), "invalid_phone": len(report.invalid_phone)}
    if any(counts.values()):
        return Verdict(
            Status.WARN,
            f"{counts['invalid_email']} invalid emails, {counts['invalid_phone']} invalid phones",
            suggestion="Review contact data at intake", details=counts,
        )
    return Verdict(Status.PASS, "All contact fields valid", details=counts)


def check_timestamps(ctx: ProbeContext) -> Verdict:
    report = ctx.auditor.audit_timestamps(ctx.records())
    details = report.to_dict()
    if report.violation_count or report.malformed:
        return Verdict(
            Status.WARN,
            f"{len(report.updated_before_created)} updated before created, "
            f"{len(report.future_created)} future-dated, "
            f"{len(report.completion_mismatch)} completion mismatches, "
            f"{len(report.malformed)} unparseable",
            suggestion="Check the updated_at trigger and completion workflow", details=details,
        )
    return Verdict(Status.PASS, "Timestamps consistent", details=details)


# ── Workload ─────────────────────────────────────────────────────────────────


def check_pending_backlog(ctx: ProbeContext) -> Verdict:
    threshold = ctx.config.pending_alert_threshold
    pending = ctx.store.count(ctx.table, [Filter("status", "eq", "pending")])
    details = {"pending": pending, "threshold": threshold}
    if pending > threshold:
        return Verdict(Status.FAIL, f"{pending} pending requests (limit {threshold})",
                       suggestion="Triage the pending queue", details=details)
    if pending > threshold // 2:
        return Verdict(Status.WARN, f"{pending} pending requests", details=details)
    return Verdict(Status.PASS, f"{pending} pending requests", details=details)


def check_urgent_backlog(ctx: ProbeContext) -> Verdict:
    threshold = ctx.config.urgent_alert_threshold
    urgent = [
        r for r in ctx.records()
        if r.get("priority") == "urgent" and r.get("status") not in ("completed", "cancelled")
    ]
    details = {"urgent_open": len(urgent), "threshold": threshold}
    if len(urgent) > threshold:
        return Verdict(Status.FAIL, f"{len(urgent)} urgent requests open (limit {threshold})",
                       suggestion="Escalate urgent requests", details=details)
    if urgent:
        return Verdict(Status.WARN, f"{len(urgent)} urgent requests open", details=details)
    return Verdict(Status.PASS, "No open urgent requests", details=details)


# ── Storage ──────────────────────────────────────────────────────────────────


def check_storage(ctx: ProbeContext) -> Verdict:
    records = ctx.records()
    rows = len(records)
    est_bytes = rows * ctx.config.bytes_per_row_estimate
    growth_7d = created_in_window(records, 7, ctx.now)
    growth_30d = created_in_window(records, 30, ctx.now)
    return Verdict(
        Status.INFO,
        f"~{est_bytes / 1024:.1f} KB across {rows} rows; +{growth_7d} in 7d, +{growth_30d} in 30d",
        details={"rows": rows, "estimated_bytes": est_bytes, "growth_7d": growth_7d, "growth_30d": growth_30d},
    )


DEFAULT_PROBES: list[Probe] = [
    Probe("Store latency", "connectivity", check_latency),
    Probe("Tables", "structure", check_tables),
    Probe("Columns", "structure", check_columns),
    Probe("Parallel read burst", "performance", check_parallel_burst),
    Probe("Mixed queries", "performance", check_mixed_queries),
    Probe("Access policy", "security", check_access_policy),
    Probe("Record integrity", "integrity", check_integrity),
    Probe("Contact fields", "validation", check_contact_fields),
    Probe("Timestamps", "audit", check_timestamps),
    Probe("Pending backlog", "workload", check_pending_backlog),
    Probe("Urgent backlog", "workload", check_urgent_backlog),
    Probe("Size estimate", "storage", check_storage),
]
