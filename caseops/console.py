"""rich renderers for command reports."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from caseops.backup.manager import BackupInfo, BackupResult
from caseops.backup.restore import RestoreSummary
from caseops.cleanup.engine import CleanupAction, CleanupResult
from caseops.health.engine import HealthReport
from caseops.health.models import Status
from caseops.integrity.auditor import AuditReport
from caseops.records import Record, display_name, try_parse_timestamp
from caseops.stats.aggregator import WEEKDAYS, display_tz

STATUS_ICON = {
    Status.PASS: ("✔", "green"),
    Status.WARN: ("⚠", "yellow"),
    Status.FAIL: ("✖", "bold red"),
    Status.INFO: ("ℹ", "cyan"),
}


def write_json(path: Path | str, payload: Any) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(payload, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    return out


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{size} B"


def _when(value: Any) -> str:
    dt = try_parse_timestamp(value)
    return dt.astimezone(display_tz()).strftime("%d/%m/%Y %H:%M") if dt else "-"


# ── Health ───────────────────────────────────────────────────────────────────


def render_health(console: Console, report: HealthReport) -> None:
    for category, results in report.by_category().items():
        table = Table(title=category.capitalize(), title_justify="left", expand=True, show_header=False)
        table.add_column("", width=2)
        table.add_column("Check", style="bold", width=22)
        table.add_column("Result")
        table.add_column("ms", justify="right", width=8)
        for r in results:
            icon, style = STATUS_ICON[r.status]
            message = Text(r.message)
            if r.suggestion and r.status in (Status.WARN, Status.FAIL):
                message.append(f"\n→ {r.suggestion}", style="dim")
            table.add_row(Text(icon, style=style), r.name, message, f"{r.duration_ms:.0f}")
        console.print(table)

    counts = report.counts()
    icon, style = STATUS_ICON[report.overall]
    console.print(Panel(
        f"{icon} Overall: [bold]{report.overall.value.upper()}[/bold]   "
        f"{counts['pass']} pass · {counts['warn']} warn · {counts['fail']} fail · {counts['info']} info   "
        f"({report.duration_ms:.0f}ms)",
        border_style=style,
    ))


# ── Listing & stats ──────────────────────────────────────────────────────────


def render_records(console: Console, records: list[Record], total: int, offset: int) -> None:
    table = Table(title=f"Requests {offset + 1}-{offset + len(records)} of {total}" if records else "Requests")
    table.add_column("Created", style="dim")
    table.add_column("Name")
    table.add_column("Email")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Priority")
    for r in records:
        table.add_row(
            _when(r.get("created_at")),
            display_name(r),
            str(r.get("email") or "-"),
            str(r.get("service_type") or "-"),
            str(r.get("status") or "-"),
            str(r.get("priority") or "-"),
        )
    if not records:
        table.add_row("-", "No records match", "", "", "", "")
    console.print(table)


def _distribution(title: str, counts: dict[str, int], total: int) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("Value")
    table.add_column("Count", justify="right")
    table.add_column("%", justify="right")
    for key, n in counts.items():
        table.add_row(key, str(n), f"{n / total * 100:.1f}" if total else "0.0")
    return table


def render_stats(console: Console, summary: dict[str, Any]) -> None:
    total = summary["total"]
    if not total:
        console.print("[yellow]No records yet; statistics appear once data exists.[/yellow]")
        return

    resolution = summary.get("resolution")
    overview = (
        f"[bold]{total}[/bold] records · {summary['completion_rate']}% completed · "
        f"R$ {summary['total_estimated_value']:,.2f} estimated\n"
        f"+{summary['created_today']} created today · {summary['completed_today']} completed today"
    )
    if resolution:
        overview += (
            f"\nResolution: avg {resolution['avg_hours']:.1f}h "
            f"(min {resolution['min_hours']:.1f}h, max {resolution['max_hours']:.1f}h, n={resolution['count']})"
        )
    console.print(Panel(overview, title="Overview", border_style="blue"))

    console.print(_distribution("By status", summary["by_status"], total))
    console.print(_distribution("By priority", summary["by_priority"], total))
    console.print(_distribution("By service", summary["by_service_type"], total))

    weekday = summary["by_weekday"]
    peak = max(weekday.values()) or 1
    lines = [f"{day[:3]}  {'█' * round(weekday[day] / peak * 30):<30} {weekday[day]}" for day in WEEKDAYS]
    console.print(Panel("\n".join(lines), title="By weekday"))

    trend = summary["daily_trend"]
    top = max((n for _, n in trend), default=0) or 1
    trend_lines = [f"{d[5:]}  {'█' * round(n / top * 30):<30} {n}" for d, n in trend]
    console.print(Panel("\n".join(trend_lines), title=f"Last {len(trend)} days"))

    if summary["top_contacts"]:
        contacts = Table(title="Top contacts", title_justify="left")
        contacts.add_column("#", justify="right")
        contacts.add_column("Email")
        contacts.add_column("Requests", justify="right")
        for i, (email, n) in enumerate(summary["top_contacts"], 1):
            contacts.add_row(str(i), email, str(n))
        console.print(contacts)

    for alert in summary["alerts"]:
        style = "bold red" if alert["level"] == "critical" else "yellow"
        console.print(f"[{style}]⚠ {alert['message']}[/{style}]")


# ── Backup / restore ─────────────────────────────────────────────────────────


def render_backup(console: Console, result: BackupResult) -> None:
    meta = result.metadata
    lines = [f"File: {result.path}", f"Size: {_human_size(result.size_bytes)}"]
    lines += [f"  {table}: {n} records" for table, n in meta.tables.items()]
    if meta.skipped_tables:
        lines.append(f"[yellow]Skipped (missing): {', '.join(meta.skipped_tables)}[/yellow]")
    lines.append(f"Checksum ({meta.checksum_algorithm}): {meta.checksum[:16]}…")
    if result.rotated:
        lines.append(f"[dim]Rotated out {len(result.rotated)} old backups[/dim]")
    console.print(Panel("\n".join(lines), title="Backup created", border_style="green"))


def render_backup_list(console: Console, backups: list[BackupInfo]) -> None:
    table = Table(title="Backups")
    table.add_column("File")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    for info in backups:
        table.add_row(info.path.name, _human_size(info.size_bytes), _when(info.modified))
    if not backups:
        table.add_row("No backups found", "", "")
    console.print(table)


def render_restore(console: Console, summary: RestoreSummary) -> None:
    if not summary.checksum_ok:
        console.print("[yellow]⚠ Checksum does not match; the file may be corrupted.[/yellow]")
    if summary.cancelled:
        console.print("[yellow]Restore cancelled. Nothing was written.[/yellow]")
        return

    title = "Restore plan (dry run)" if summary.dry_run else "Restore summary"
    table = Table(title=title)
    table.add_column("Table")
    table.add_column("Records", justify="right")
    if not summary.dry_run:
        table.add_column("Inserted", justify="right", style="green")
        table.add_column("Skipped", justify="right", style="dim")
        table.add_column("Errored", justify="right", style="red")
    for name, t in summary.tables.items():
        row = [name, str(t.planned)]
        if not summary.dry_run:
            row += [str(t.inserted), str(t.skipped), str(t.errored)]
        table.add_row(*row)
    console.print(table)


# ── Cleanup ──────────────────────────────────────────────────────────────────


def render_audit(console: Console, report: AuditReport, actions: list[CleanupAction]) -> None:
    table = Table(title=f"Integrity analysis of {report.total} records")
    table.add_column("Problem")
    table.add_column("Found", justify="right")
    table.add_column("Planned action")
    planned: dict[str, str] = {}
    for a in actions:
        planned[a.category] = "fix" if a.kind == "fix" else "delete"
    for category, n in report.counts().items():
        action = planned.get(category, "-") if n else ""
        table.add_row(category.replace("_", " "), str(n), action)
    console.print(table)
    if actions:
        fixes = sum(1 for a in actions if a.kind == "fix")
        console.print(f"{fixes} fixes and {len(actions) - fixes} deletions planned.")
    else:
        console.print("[green]✔ Nothing to clean up.[/green]")


def render_cleanup(console: Console, result: CleanupResult) -> None:
    if result.cancelled:
        console.print("[yellow]Cleanup cancelled. Nothing was changed.[/yellow]")
        return
    table = Table(title="Cleanup result")
    table.add_column("Category")
    table.add_column("Fixed", justify="right", style="green")
    table.add_column("Removed", justify="right", style="yellow")
    table.add_column("Errored", justify="right", style="red")
    for name, c in result.categories.items():
        if c.fixed or c.removed or c.errored:
            table.add_row(name.replace("_", " "), str(c.fixed), str(c.removed), str(c.errored))
    table.add_row("[bold]total[/bold]", str(result.fixed), str(result.removed), str(result.errored))
    console.print(table)
