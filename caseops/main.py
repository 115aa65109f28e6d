"""Entry point for the caseops command line."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date, datetime, time, timedelta, timezone

from rich.console import Console
from rich.live import Live
from rich.panel import Panel

from caseops import __version__
from caseops.backup.manager import BackupManager
from caseops.backup.models import BackupFormatError
from caseops.backup.restore import RestoreManager
from caseops.cleanup.engine import CleanupEngine, CleanupOptions
from caseops.config import settings
from caseops.console import (
    render_audit,
    render_backup,
    render_backup_list,
    render_cleanup,
    render_health,
    render_records,
    render_restore,
    render_stats,
    write_json,
)
from caseops.health.engine import HealthCheckEngine
from caseops.health.models import Status
from caseops.integrity.auditor import IntegrityAuditor
from caseops.monitor.change_monitor import ChangeMonitor
from caseops.monitor.views import DashboardView, MonitorView
from caseops.ports import ConfirmationPort, TerminalConfirmation
from caseops.records import PRIORITIES, STATUSES
from caseops.stats.aggregator import display_tz, summarize
from caseops.store import Filter, RecordStore, StoreError, build_store

logger = logging.getLogger(__name__)

console = Console()


# ── Commands ─────────────────────────────────────────────────────────────────


def cmd_health(args: argparse.Namespace, store: RecordStore, confirm: ConfirmationPort) -> int:
    console.print(Panel(f"Health check · {settings.store_url}", style="bold blue"))
    with console.status("[bold green]Running checks..."):
        report = HealthCheckEngine(store).run()
    render_health(console, report)
    if args.output:
        console.print(f"[dim]Report written to {write_json(args.output, report.to_dict())}[/dim]")
    return 1 if report.overall == Status.FAIL else 0


def _day_start(day: date) -> str:
    """Midnight of ``day`` in the display timezone, as a UTC ISO timestamp."""
    return datetime.combine(day, time.min, tzinfo=display_tz()).astimezone(timezone.utc).isoformat()


def cmd_list(args: argparse.Namespace, store: RecordStore, confirm: ConfirmationPort) -> int:
    filters = []
    if args.status:
        filters.append(Filter("status", "eq", args.status))
    if args.priority:
        filters.append(Filter("priority", "eq", args.priority))
    if args.service_type:
        filters.append(Filter("service_type", "eq", args.service_type))
    if args.since:
        filters.append(Filter("created_at", "gte", _day_start(args.since)))
    if args.until:
        filters.append(Filter("created_at", "lt", _day_start(args.until + timedelta(days=1))))
    records, total = store.query(
        settings.primary_table,
        filters=filters,
        order=args.order,
        descending=args.dir == "desc",
        offset=args.offset,
        limit=args.limit,
        search=args.search,
    )
    render_records(console, records, total, args.offset)
    if args.output:
        console.print(f"[dim]Records written to {write_json(args.output, records)}[/dim]")
    return 0


def cmd_stats(args: argparse.Namespace, store: RecordStore, confirm: ConfirmationPort) -> int:
    with console.status("[bold green]Loading records..."):
        records = store.fetch_all(settings.primary_table)
    summary = summarize(records, trend_days=args.days)
    render_stats(console, summary)
    if args.output:
        console.print(f"[dim]Statistics written to {write_json(args.output, summary)}[/dim]")
    return 0


def cmd_backup(args: argparse.Namespace, store: RecordStore, confirm: ConfirmationPort) -> int:
    manager = BackupManager(store)
    if args.list:
        render_backup_list(console, manager.list_backups())
        return 0
    with console.status("[bold green]Exporting..."):
        result = manager.export(
            tables=[args.table] if args.table else None,
            compress=not args.no_compress,
            output=args.output,
        )
    render_backup(console, result)
    return 0


def cmd_restore(args: argparse.Namespace, store: RecordStore, confirm: ConfirmationPort) -> int:
    path = args.file or BackupManager(store).latest()
    if path is None:
        console.print(f"[red]✖ No backups found in {settings.backup_dir}[/red]")
        return 1
    console.print(Panel(f"Restore from {path}", style="bold blue"))
    summary = RestoreManager(store, confirm).restore(path, dry_run=args.dry_run, force=args.force)
    render_restore(console, summary)
    return 1 if summary.failed else 0


def cmd_cleanup(args: argparse.Namespace, store: RecordStore, confirm: ConfirmationPort) -> int:
    auditor = IntegrityAuditor(stale_after_days=args.remove_old)
    engine = CleanupEngine(store, confirm, auditor=auditor)
    options = CleanupOptions(
        remove_stale=args.remove_old is not None,
        remove_cancelled=args.remove_cancelled,
        remove_duplicates=not args.keep_duplicates,
    )
    with console.status("[bold green]Analyzing records..."):
        report = engine.analyze()
    actions = engine.plan(report, options)
    render_audit(console, report, actions)

    if args.dry_run:
        console.print("[cyan]Dry run: no changes made.[/cyan]")
        return 0
    if not actions:
        return 0

    result = engine.execute(report, options, force=args.force)
    render_cleanup(console, result)
    return 1 if result.errored else 0


def _watch(store: RecordStore, interval: float, dashboard: bool) -> int:
    with Live(console=console, refresh_per_second=4, screen=dashboard) as live:
        view = DashboardView(console, live) if dashboard else MonitorView(console, live)
        monitor = ChangeMonitor(store, view, interval=interval)
        try:
            asyncio.run(monitor.run())
        except KeyboardInterrupt:
            monitor.stop()
    console.print(f"[dim]Stopped after {monitor.state.ticks} ticks, {monitor.state.changes_detected} changes.[/dim]")
    return 0


def cmd_monitor(args: argparse.Namespace, store: RecordStore, confirm: ConfirmationPort) -> int:
    return _watch(store, args.interval, dashboard=False)


def cmd_live(args: argparse.Namespace, store: RecordStore, confirm: ConfirmationPort) -> int:
    return _watch(store, args.interval, dashboard=True)


COMMANDS = {
    "health": cmd_health,
    "list": cmd_list,
    "stats": cmd_stats,
    "backup": cmd_backup,
    "restore": cmd_restore,
    "cleanup": cmd_cleanup,
    "monitor": cmd_monitor,
    "live": cmd_live,
}


# ── Parser ───────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    common.add_argument("--store", choices=("rest", "memory"), default="rest", help="Store adapter")

    parser = argparse.ArgumentParser(prog="caseops", description="Record store operations toolkit")
    parser.add_argument("--version", action="version", version=f"caseops {__version__}")
    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("health", parents=[common], help="Run categorized health checks")
    p.add_argument("--output", help="Write the report as JSON")

    p = sub.add_parser("list", parents=[common], help="List records")
    p.add_argument("--status", choices=STATUSES)
    p.add_argument("--priority", choices=PRIORITIES)
    p.add_argument("--service-type", help="Exact service type")
    p.add_argument("--since", type=date.fromisoformat, metavar="YYYY-MM-DD", help="Created on or after this day")
    p.add_argument("--until", type=date.fromisoformat, metavar="YYYY-MM-DD", help="Created on or before this day")
    p.add_argument("--search", help="Substring of name, email or description")
    p.add_argument("--limit", type=int, default=20)
    p.add_argument("--offset", type=int, default=0)
    p.add_argument("--order", default="created_at")
    p.add_argument("--dir", choices=("asc", "desc"), default="desc")
    p.add_argument("--output", help="Write the listed records as JSON")

    p = sub.add_parser("stats", parents=[common], help="Statistics and trends")
    p.add_argument("--output", help="Write the statistics as JSON")
    p.add_argument("--days", type=int, default=14, help="Trend window in days")

    p = sub.add_parser("backup", parents=[common], help="Export tables to a backup file")
    p.add_argument("--table", help="Back up a single table")
    p.add_argument("--no-compress", action="store_true")
    p.add_argument("--output", help="Target file or directory")
    p.add_argument("--list", action="store_true", help="List existing backups")

    p = sub.add_parser("restore", parents=[common], help="Restore a backup file")
    p.add_argument("--file", help="Backup to restore (default: newest)")
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("--force", action="store_true", help="Skip confirmation and checksum override")

    p = sub.add_parser("cleanup", parents=[common], help="Find and fix data problems")
    p.add_argument("--dry-run", action="store_true")
    p.add_argument("--force", action="store_true", help="Skip confirmation")
    p.add_argument("--remove-old", type=int, metavar="DAYS", help="Delete completed requests older than DAYS")
    p.add_argument("--remove-cancelled", action="store_true")
    p.add_argument("--keep-duplicates", action="store_true")

    for name, help_text in (("monitor", "Watch for changes"), ("live", "Full live dashboard")):
        p = sub.add_parser(name, parents=[common], help=help_text)
        p.add_argument("--interval", type=float, default=settings.monitor_interval, help="Seconds between ticks")

    return parser


def run(
    argv: list[str] | None = None,
    store: RecordStore | None = None,
    confirm: ConfirmationPort | None = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    store = store or build_store(args.store)
    confirm = confirm or TerminalConfirmation(console)
    try:
        return COMMANDS[args.command](args, store, confirm)
    except StoreError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        console.print(f"[bold red]✖ {type(e).__name__}: {e}[/bold red]")
        return 1
    except BackupFormatError as e:
        console.print(f"[bold red]✖ {e}[/bold red]")
        return 1
    finally:
        store.close()


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
