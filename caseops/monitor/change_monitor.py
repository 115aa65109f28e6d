"""Change monitor: periodic full-snapshot diffing.

Each tick fetches the whole table off the event loop, diffs it against the
previous snapshot by id, and pushes the new state to a RenderPort.

Features:
- Fixed retry interval: an unreachable store marks the state disconnected
  and the loop simply tries again next tick
- Ticks never overlap (fetch + render complete before the next wait)
- Explicit stop signal via ``asyncio.Event``
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from caseops.config import settings
from caseops.ports import RenderPort
from caseops.records import Record
from caseops.stats.aggregator import summarize
from caseops.store.base import RecordStore
from caseops.store.errors import StoreError

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ChangeEvent:
    type: ChangeType
    record: Record
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "record": self.record, "timestamp": self.timestamp}


def diff_snapshots(previous: list[Record], current: list[Record], at: str | None = None) -> list[ChangeEvent]:
    """Compare two snapshots by id.

    New ids are inserts, missing ids are deletes, and ids present in both
    whose ``updated_at`` changed are updates. Event order follows
    ``current`` for inserts/updates, then ``previous`` for deletes.
    """
    at = at or datetime.now(timezone.utc).isoformat()
    before = {r.get("id"): r for r in previous}
    after_ids = {r.get("id") for r in current}
    events: list[ChangeEvent] = []

    for record in current:
        old = before.get(record.get("id"))
        if old is None:
            events.append(ChangeEvent(ChangeType.INSERT, record, at))
        elif old.get("updated_at") != record.get("updated_at"):
            events.append(ChangeEvent(ChangeType.UPDATE, record, at))

    for rid, record in before.items():
        if rid not in after_ids:
            events.append(ChangeEvent(ChangeType.DELETE, record, at))

    return events


class MonitorState:
    """Everything a view needs to draw one frame."""

    def __init__(self, history: int = 10) -> None:
        self.connection: str = "connecting"  # connecting | connected | disconnected
        self.started_at: datetime = datetime.now(timezone.utc)
        self.last_update: str | None = None
        self.ticks: int = 0
        self.error_count: int = 0
        self.consecutive_failures: int = 0
        self.error: str | None = None
        self.record_count: int = 0
        self.changes_detected: int = 0
        self.recent_changes: deque[ChangeEvent] = deque(maxlen=history)
        self.records: list[Record] = []
        self.stats: dict[str, Any] = {}

    @property
    def uptime_seconds(self) -> float:
        return (datetime.now(timezone.utc) - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "connection": self.connection,
            "last_update": self.last_update,
            "ticks": self.ticks,
            "uptime_seconds": round(self.uptime_seconds, 1),
            "error_count": self.error_count,
            "consecutive_failures": self.consecutive_failures,
            "error": self.error,
            "record_count": self.record_count,
            "changes_detected": self.changes_detected,
            "recent_changes": [e.to_dict() for e in self.recent_changes],
        }


class ChangeMonitor:
    """Polls one table on a fixed interval and reports what changed."""

    def __init__(
        self,
        store: RecordStore,
        renderer: RenderPort | None = None,
        interval: float | None = None,
        table: str | None = None,
        history: int | None = None,
    ) -> None:
        self.store = store
        self.renderer = renderer
        self.interval = interval if interval is not None else settings.monitor_interval
        self.table = table or settings.primary_table
        self.state = MonitorState(history if history is not None else settings.monitor_history)
        self._previous: list[Record] | None = None
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def run(self, max_ticks: int | None = None) -> MonitorState:
        """Tick until stopped (or ``max_ticks`` reached)."""
        self._stop.clear()
        logger.info("Monitor started on %s (interval=%ss)", self.table, self.interval)
        while not self._stop.is_set():
            await self.tick()
            if max_ticks is not None and self.state.ticks >= max_ticks:
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Monitor stopped after %d ticks", self.state.ticks)
        return self.state

    async def tick(self) -> list[ChangeEvent]:
        """One fetch + diff + render cycle."""
        now = datetime.now(timezone.utc).isoformat()
        self.state.ticks += 1
        events: list[ChangeEvent] = []

        try:
            loop = asyncio.get_running_loop()
            current = await loop.run_in_executor(None, self.store.fetch_all, self.table)
        except Exception as e:
            if not isinstance(e, StoreError):
                logger.exception("Monitor fetch crashed")
            elif self.state.connection == "connected":
                logger.warning("Store went offline: %s", e)
            self.state.connection = "disconnected"
            self.state.error = str(e)
            self.state.error_count += 1
            self.state.consecutive_failures += 1
            logger.debug("Monitor fetch failed (%d consecutive)", self.state.consecutive_failures)
        else:
            if self.state.connection == "disconnected":
                logger.info("Store reconnected after %d failed ticks", self.state.consecutive_failures)
            if self._previous is not None:
                events = diff_snapshots(self._previous, current, now)
                for event in events:
                    self.state.recent_changes.appendleft(event)
                self.state.changes_detected += len(events)
            self._previous = current
            self.state.connection = "connected"
            self.state.error = None
            self.state.consecutive_failures = 0
            self.state.last_update = now
            self.state.record_count = len(current)
            self.state.records = current
            self.state.stats = summarize(current)

        if self.renderer is not None:
            try:
                self.renderer.render(self.state)
            except Exception:
                logger.exception("Monitor render failed")
        return events
