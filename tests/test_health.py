"""Tests for the health check engine and probes."""

from __future__ import annotations

from conftest import NOW, make_record
from caseops.health import CheckResult, HealthCheckEngine, Probe, ProbeContext, Status, Verdict, aggregate_status
from caseops.health import probes
from caseops.store.errors import SchemaError, StoreRequestError
from caseops.store.memory import MemoryRecordStore

T = "service_requests"


def result(status: Status) -> CheckResult:
    return CheckResult(name="x", category="c", status=status, message="")


def run_probe(probe_fn, store: MemoryRecordStore) -> Verdict:
    return probe_fn(ProbeContext(store, now=NOW))


# ── Aggregation ──────────────────────────────────────────────────────────────


class TestAggregation:
    def test_any_fail_is_fail(self) -> None:
        assert aggregate_status([result(Status.PASS), result(Status.WARN), result(Status.FAIL)]) == Status.FAIL

    def test_warn_without_fail(self) -> None:
        assert aggregate_status([result(Status.PASS), result(Status.WARN), result(Status.INFO)]) == Status.WARN

    def test_info_does_not_count(self) -> None:
        assert aggregate_status([result(Status.PASS), result(Status.INFO)]) == Status.PASS
        assert aggregate_status([]) == Status.PASS

    def test_check_result_timestamp(self) -> None:
        r = result(Status.PASS)
        assert "T" in r.timestamp
        assert r.to_dict()["status"] == "pass"


# ── Engine ───────────────────────────────────────────────────────────────────


class TestEngine:
    def test_healthy_store_passes(self, seeded_store: MemoryRecordStore) -> None:
        report = HealthCheckEngine(seeded_store, now=NOW).run()

        assert len(report.results) == len(probes.DEFAULT_PROBES)
        assert report.overall == Status.PASS
        by_name = {r.name: r for r in report.results}
        assert by_name["Tables"].status == Status.INFO  # optional tables absent
        assert by_name["Size estimate"].status == Status.INFO
        assert by_name["Columns"].status == Status.PASS
        assert report.to_dict()["overall"] == "pass"

    def test_missing_table_does_not_abort(self, seeded_store: MemoryRecordStore) -> None:
        seeded_store.missing_tables.add(T)
        report = HealthCheckEngine(seeded_store, now=NOW).run()

        assert len(report.results) == len(probes.DEFAULT_PROBES)
        by_name = {r.name: r for r in report.results}
        assert by_name["Tables"].status == Status.FAIL
        assert by_name["Store latency"].status == Status.WARN
        assert report.overall == Status.FAIL

    def test_offline_store_fails(self, seeded_store: MemoryRecordStore) -> None:
        seeded_store.offline = True
        report = HealthCheckEngine(seeded_store, now=NOW).run()
        assert report.overall == Status.FAIL
        assert report.results[0].message.startswith("Store unreachable")

    def test_crashing_probe_is_contained(self, store: MemoryRecordStore) -> None:
        def boom(ctx: ProbeContext) -> Verdict:
            raise RuntimeError("kaput")

        ok = Probe("ok", "misc", lambda ctx: Verdict(Status.PASS, "fine"))
        report = HealthCheckEngine(store, probes=[Probe("boom", "misc", boom), ok]).run()
        assert [r.status for r in report.results] == [Status.FAIL, Status.PASS]
        assert "RuntimeError" in report.results[0].message

    def test_optional_table_schema_error_is_info(self, store: MemoryRecordStore) -> None:
        def probe(ctx: ProbeContext) -> Verdict:
            raise SchemaError("system_logs")

        report = HealthCheckEngine(store, probes=[Probe("logs", "structure", probe)]).run()
        assert report.results[0].status == Status.INFO

    def test_budget_skips_remaining_probes(self, store: MemoryRecordStore) -> None:
        clock = {"t": 0.0}

        def slow(ctx: ProbeContext) -> Verdict:
            clock["t"] += 20
            return Verdict(Status.PASS, "done")

        engine = HealthCheckEngine(
            store,
            probes=[Probe(f"p{i}", "misc", slow) for i in range(4)],
            budget_seconds=30,
            clock=lambda: clock["t"],
        )
        report = engine.run()
        assert [r.status for r in report.results] == [Status.PASS, Status.PASS, Status.INFO, Status.INFO]
        assert "budget exhausted" in report.results[2].message


# ── Individual probes ────────────────────────────────────────────────────────


class DeniedStore(MemoryRecordStore):
    def query(self, table, filters=None, **kwargs):
        if filters:
            raise StoreRequestError(403, "permission denied")
        return super().query(table, filters=filters, **kwargs)


class CountingStore(MemoryRecordStore):
    def __init__(self) -> None:
        super().__init__()
        self.fetch_all_calls = 0

    def fetch_all(self, table, order="created_at", descending=False):
        self.fetch_all_calls += 1
        return super().fetch_all(table, order=order, descending=descending)


class TestProbes:
    def test_latency_passes_in_memory(self, seeded_store: MemoryRecordStore) -> None:
        v = run_probe(probes.check_latency, seeded_store)
        assert v.status == Status.PASS
        assert v.details["samples"] == 5

    def test_columns_warn_when_missing(self, store: MemoryRecordStore) -> None:
        store.insert(T, {"id": "1", "email": "a@b.com"})
        v = run_probe(probes.check_columns, store)
        assert v.status == Status.WARN
        assert "status" in v.details["missing"]

    def test_burst_and_mixed_pass(self, seeded_store: MemoryRecordStore) -> None:
        assert run_probe(probes.check_parallel_burst, seeded_store).status == Status.PASS
        assert run_probe(probes.check_mixed_queries, seeded_store).status == Status.PASS

    def test_access_policy_denied_warns(self) -> None:
        store = DeniedStore()
        store.create_table(T)
        v = run_probe(probes.check_access_policy, store)
        assert v.status == Status.WARN
        assert "row-level security" in v.suggestion

    def test_integrity_warns_with_cleanup_hint(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(status="bogus"))
        store.insert(T, make_record())
        v = run_probe(probes.check_integrity, store)
        assert v.status == Status.WARN
        assert v.details["invalid_status"] == 1
        assert "caseops cleanup" in v.suggestion

    def test_timestamps_warn(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(days_ago=-2))
        assert run_probe(probes.check_timestamps, store).status == Status.WARN

    def test_pending_backlog_tiers(self, store: MemoryRecordStore) -> None:
        for _ in range(30):
            store.insert(T, make_record())
        assert run_probe(probes.check_pending_backlog, store).status == Status.WARN
        for _ in range(21):
            store.insert(T, make_record())
        assert run_probe(probes.check_pending_backlog, store).status == Status.FAIL

    def test_urgent_backlog(self, store: MemoryRecordStore) -> None:
        store.insert(T, make_record(priority="urgent"))
        store.insert(T, make_record(priority="urgent", status="completed", completed_at=NOW.isoformat()))
        v = run_probe(probes.check_urgent_backlog, store)
        assert v.status == Status.WARN
        assert v.details["urgent_open"] == 1

    def test_storage_growth(self, store: MemoryRecordStore) -> None:
        for days in (1, 3, 20, 60):
            store.insert(T, make_record(days_ago=days))
        v = run_probe(probes.check_storage, store)
        assert v.status == Status.INFO
        assert v.details["rows"] == 4
        assert v.details["estimated_bytes"] == 2000
        assert v.details["growth_7d"] == 2
        assert v.details["growth_30d"] == 3

    def test_records_fetched_once_per_run(self) -> None:
        store = CountingStore()
        store.create_table(T, [make_record(), make_record()])
        HealthCheckEngine(store, now=NOW).run()
        assert store.fetch_all_calls == 1
