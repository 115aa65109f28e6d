"""rich renderers for the monitor loop.

``MonitorView`` is the compact metrics panel used by ``caseops monitor``;
``DashboardView`` is the full screen used by ``caseops live``. Both are
RenderPorts: they redraw a ``rich.live.Live`` when one is attached and print
otherwise.
"""

from __future__ import annotations

from datetime import datetime

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from caseops.monitor.change_monitor import ChangeType, MonitorState
from caseops.ports import RenderPort
from caseops.records import STATUSES, display_name, try_parse_timestamp
from caseops.stats.aggregator import display_tz

CONNECTION_STYLE = {"connected": "bold green", "connecting": "yellow", "disconnected": "bold red"}
CHANGE_STYLE = {ChangeType.INSERT: "green", ChangeType.UPDATE: "yellow", ChangeType.DELETE: "red"}
STATUS_STYLE = {"pending": "yellow", "in_progress": "cyan", "completed": "green", "cancelled": "dim"}


def _clock(value: str | None) -> str:
    dt = try_parse_timestamp(value)
    return dt.astimezone(display_tz()).strftime("%H:%M:%S") if dt else "-"


def _uptime(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _bar(value: int, total: int, width: int = 30) -> str:
    filled = round(value / total * width) if total else 0
    return "█" * filled + "░" * (width - filled)


def connection_line(state: MonitorState) -> Text:
    line = Text()
    line.append(f"● {state.connection.upper()}", style=CONNECTION_STYLE.get(state.connection, ""))
    line.append(f"   last update {_clock(state.last_update)}   uptime {_uptime(state.uptime_seconds)}")
    line.append(f"   ticks {state.ticks}   errors {state.error_count}")
    if state.error:
        line.append(f"\n{state.error}", style="red")
    return line


def changes_table(state: MonitorState) -> Table:
    table = Table(title="Recent changes", expand=True)
    table.add_column("Time", style="dim", width=10)
    table.add_column("Type", width=8)
    table.add_column("Record")
    table.add_column("Status", width=12)
    for event in state.recent_changes:
        table.add_row(
            _clock(event.timestamp),
            Text(event.type.value.upper(), style=CHANGE_STYLE[event.type]),
            display_name(event.record),
            str(event.record.get("status", "")),
        )
    if not state.recent_changes:
        table.add_row("-", "-", "No changes yet", "-")
    return table


class _LiveRenderer(RenderPort):
    def __init__(self, console: Console | None = None, live: Live | None = None) -> None:
        self.console = console or Console()
        self.live = live

    def build(self, state: MonitorState) -> RenderableType:
        raise NotImplementedError

    def render(self, state: MonitorState) -> None:
        view = self.build(state)
        if self.live is not None:
            self.live.update(view, refresh=True)
        else:
            self.console.print(view)


class MonitorView(_LiveRenderer):
    """Compact metrics: connection, counts, today's activity, recent changes."""

    def build(self, state: MonitorState) -> RenderableType:
        stats = state.stats or {}
        by_status = stats.get("by_status", {})
        metrics = Table.grid(padding=(0, 3))
        metrics.add_row(
            f"[bold]{state.record_count}[/bold] records",
            f"[yellow]{by_status.get('pending', 0)}[/yellow] pending",
            f"[cyan]{by_status.get('in_progress', 0)}[/cyan] in progress",
            f"[green]{by_status.get('completed', 0)}[/green] completed",
        )
        metrics.add_row(
            f"+{stats.get('created_today', 0)} today",
            f"{stats.get('completed_today', 0)} done today",
            f"{state.changes_detected} changes seen",
            f"{stats.get('completion_rate', 0.0)}% completion",
        )
        return Panel(
            Group(connection_line(state), Text(""), metrics, Text(""), changes_table(state)),
            title="caseops monitor",
            border_style="blue",
        )


class DashboardView(_LiveRenderer):
    """Full dashboard: overview, status bars, newest records, urgent alerts."""

    def __init__(self, console: Console | None = None, live: Live | None = None, recent: int = 8) -> None:
        super().__init__(console, live)
        self.recent = recent

    def build(self, state: MonitorState) -> RenderableType:
        stats = state.stats or {}
        total = state.record_count
        by_status = stats.get("by_status", {})

        overview = Table.grid(padding=(0, 3))
        overview.add_row(
            f"[bold]{total}[/bold] total",
            f"+{stats.get('created_today', 0)} today",
            f"{stats.get('completion_rate', 0.0)}% completion",
            f"R$ {stats.get('total_estimated_value', 0.0):,.2f} estimated",
        )

        bars = Table.grid(padding=(0, 2))
        for status in STATUSES:
            count = by_status.get(status, 0)
            bars.add_row(
                Text(status, style=STATUS_STYLE.get(status, "")),
                Text(_bar(count, total), style=STATUS_STYLE.get(status, "")),
                str(count),
            )

        newest = sorted(
            state.records,
            key=lambda r: try_parse_timestamp(r.get("created_at")) or datetime.min.replace(tzinfo=display_tz()),
            reverse=True,
        )[: self.recent]
        records = Table(title="Newest requests", expand=True)
        records.add_column("Created", style="dim", width=16)
        records.add_column("Name")
        records.add_column("Service")
        records.add_column("Status", width=12)
        records.add_column("Priority", width=9)
        for r in newest:
            created = try_parse_timestamp(r.get("created_at"))
            records.add_row(
                created.astimezone(display_tz()).strftime("%d/%m %H:%M") if created else "-",
                display_name(r),
                str(r.get("service_type") or "-"),
                Text(str(r.get("status") or "-"), style=STATUS_STYLE.get(r.get("status") or "", "")),
                str(r.get("priority") or "-"),
            )

        alert_lines = Text()
        for alert in stats.get("alerts", []):
            style = "bold red" if alert["level"] == "critical" else "yellow"
            alert_lines.append(f"⚠ {alert['message']}\n", style=style)
        if not alert_lines:
            alert_lines.append("No alerts", style="green")

        return Group(
            Panel(connection_line(state), title="caseops live", border_style="blue"),
            Panel(overview, title="Overview"),
            Panel(bars, title="By status"),
            records,
            Panel(alert_lines, title="Alerts", border_style="red" if stats.get("alerts") else "green"),
            changes_table(state),
        )
