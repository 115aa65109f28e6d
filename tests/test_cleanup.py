"""Tests for the cleanup engine."""

from __future__ import annotations

from conftest import NOW, ScriptedConfirmation, make_record
from caseops.cleanup import CleanupEngine, CleanupOptions
from caseops.integrity.auditor import IntegrityAuditor
from caseops.store.memory import MemoryRecordStore

T = "service_requests"


def engine(store: MemoryRecordStore, confirm: ScriptedConfirmation, **kw) -> CleanupEngine:
    return CleanupEngine(store, confirm, auditor=IntegrityAuditor(now=NOW, **kw))


class TestScenario:
    """Two valid pending records and one with status 'bogus'."""

    def seed(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(id="ok-1", days_ago=3))
        store.insert(T, make_record(id="bad", days_ago=2, status="bogus"))
        store.insert(T, make_record(id="ok-2", days_ago=1))

    def test_dry_run_reports_and_changes_nothing(self, store: MemoryRecordStore) -> None:
        self.seed(store)
        before = store.rows(T)

        report = engine(store, ScriptedConfirmation()).analyze()

        assert len(report.invalid_status) == 1
        assert report.invalid_status[0]["id"] == "bad"
        assert store.rows(T) == before

    def test_confirmed_execution_fixes_only_bad_record(self, store: MemoryRecordStore) -> None:
        self.seed(store)
        before = {r["id"]: r for r in store.rows(T)}
        confirm = ScriptedConfirmation(True)
        eng = engine(store, confirm)

        result = eng.execute(eng.analyze(), CleanupOptions())

        after = {r["id"]: r for r in store.rows(T)}
        assert after["bad"]["status"] == "pending"
        assert after["ok-1"] == before["ok-1"]
        assert after["ok-2"] == before["ok-2"]
        assert result.categories["invalid_status"].fixed == 1
        assert (result.fixed, result.removed, result.errored) == (1, 0, 0)
        assert len(confirm.questions) == 1

    def test_declined_confirmation_cancels(self, store: MemoryRecordStore) -> None:
        self.seed(store)
        before = store.rows(T)
        eng = engine(store, ScriptedConfirmation(False))

        result = eng.execute(eng.analyze(), CleanupOptions())

        assert result.cancelled
        assert store.rows(T) == before

    def test_force_skips_confirmation(self, store: MemoryRecordStore) -> None:
        self.seed(store)
        confirm = ScriptedConfirmation()
        eng = engine(store, confirm)
        result = eng.execute(eng.analyze(), CleanupOptions(), force=True)
        assert result.fixed == 1
        assert confirm.questions == []


class TestPlan:
    def test_deletions_are_opt_in(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(id="old", days_ago=200, status="completed", completed_at=NOW.isoformat()))
        store.insert(T, make_record(id="gone", status="cancelled"))
        eng = engine(store, ScriptedConfirmation())
        report = eng.analyze()

        assert eng.plan(report, CleanupOptions()) == []
        actions = eng.plan(report, CleanupOptions(remove_stale=True, remove_cancelled=True))
        assert {(a.kind, a.record_id) for a in actions} == {("delete", "old"), ("delete", "gone")}

    def test_deleted_record_is_not_also_fixed(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(id="first", email="d@x.com", created_at="2025-06-10T08:00:00Z"))
        store.insert(T, make_record(id="dup", email="d@x.com", created_at="2025-06-10T09:00:00Z", priority="??"))
        eng = engine(store, ScriptedConfirmation())

        actions = eng.plan(eng.analyze(), CleanupOptions())
        assert [(a.kind, a.category, a.record_id) for a in actions] == [("delete", "duplicates", "dup")]

    def test_keep_duplicates(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(id="first", email="d@x.com", created_at="2025-06-10T08:00:00Z"))
        store.insert(T, make_record(id="dup", email="d@x.com", created_at="2025-06-10T09:00:00Z"))
        eng = engine(store, ScriptedConfirmation())
        assert eng.plan(eng.analyze(), CleanupOptions(remove_duplicates=False)) == []

    def test_analyze_reads_oldest_first(self, store: MemoryRecordStore) -> None:
        # inserted newest first; the older one must survive as the original
        store.insert(T, make_record(id="newer", email="d@x.com", created_at="2025-06-10T09:00:00Z"))
        store.insert(T, make_record(id="older", email="d@x.com", created_at="2025-06-10T08:00:00Z"))
        report = engine(store, ScriptedConfirmation()).analyze()
        assert [r["id"] for r in report.duplicates] == ["newer"]


class TestFaultTolerance:
    def test_one_failure_does_not_stop_the_batch(self, store: MemoryRecordStore) -> None:
        for rid in ("a", "b", "c"):
            store.insert(T, make_record(id=rid, status="bogus"))
        store.fail_ids.add("b")
        eng = engine(store, ScriptedConfirmation(True))

        result = eng.execute(eng.analyze(), CleanupOptions())

        assert result.categories["invalid_status"].fixed == 2
        assert result.categories["invalid_status"].errored == 1
        assert result.errors[0][0] == "b"
        statuses = {r["id"]: r["status"] for r in store.rows(T)}
        assert statuses == {"a": "pending", "b": "bogus", "c": "pending"}

    def test_nothing_to_do_asks_nothing(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record())
        confirm = ScriptedConfirmation()
        eng = engine(store, confirm)
        result = eng.execute(eng.analyze(), CleanupOptions())
        assert confirm.questions == []
        assert not result.cancelled
        assert result.to_dict()["totals"] == {"fixed": 0, "removed": 0, "errored": 0}
