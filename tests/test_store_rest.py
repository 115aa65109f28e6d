"""Tests for the PostgREST adapter using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from caseops.store import Filter, RestRecordStore, UpsertOutcome
from caseops.store.errors import SchemaError, StoreConnectionError, StoreRequestError


def make_store(handler, service_key: str = "") -> RestRecordStore:
    return RestRecordStore(
        "http://store.test/", api_key="anon-key", service_key=service_key,
        transport=httpx.MockTransport(handler),
    )


class TestReads:
    def test_query_builds_postgrest_params(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"id": "1"}], headers={"Content-Range": "0-0/42"})

        store = make_store(handler)
        rows, total = store.query(
            "service_requests",
            filters=[Filter("status", "eq", "pending")],
            order="created_at", descending=True, offset=10, limit=5, search="ana",
        )

        assert rows == [{"id": "1"}]
        assert total == 42
        req = seen[0]
        assert req.url.path == "/rest/v1/service_requests"
        params = req.url.params
        assert params["status"] == "eq.pending"
        assert params["order"] == "created_at.desc"
        assert params["offset"] == "10"
        assert params["limit"] == "5"
        assert "first_name.ilike.*ana*" in params["or"]
        assert req.headers["apikey"] == "anon-key"
        assert req.headers["Authorization"] == "Bearer anon-key"
        assert req.headers["Prefer"] == "count=exact"

    def test_count_reads_content_range(self) -> None:
        store = make_store(lambda r: httpx.Response(200, json=[], headers={"Content-Range": "*/7"}))
        assert store.count("service_requests") == 7

    def test_fetch_all_pages(self, monkeypatch) -> None:
        monkeypatch.setattr("caseops.store.rest.PAGE_SIZE", 2)
        rows = [{"id": str(i)} for i in range(5)]

        def handler(request: httpx.Request) -> httpx.Response:
            offset = int(request.url.params.get("offset", "0"))
            limit = int(request.url.params["limit"])
            return httpx.Response(200, json=rows[offset:offset + limit])

        assert [r["id"] for r in make_store(handler).fetch_all("service_requests")] == ["0", "1", "2", "3", "4"]


class TestWrites:
    def test_upsert_inserted_and_skipped(self) -> None:
        existing = {"a"}

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert request.url.params["on_conflict"] == "id"
            assert "resolution=ignore-duplicates" in request.headers["Prefer"]
            if body["id"] in existing:
                return httpx.Response(201, json=[])
            return httpx.Response(201, json=[body])

        store = make_store(handler)
        assert store.upsert("service_requests", {"id": "b"}) is UpsertOutcome.INSERTED
        assert store.upsert("service_requests", {"id": "a"}) is UpsertOutcome.SKIPPED

    def test_mutations_use_service_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        store = make_store(handler, service_key="service-key")
        store.update("service_requests", "x", {"status": "pending"})
        store.delete("service_requests", "x")

        assert [r.method for r in seen] == ["PATCH", "DELETE"]
        assert all(r.headers["apikey"] == "service-key" for r in seen)
        assert seen[0].url.params["id"] == "eq.x"


class TestErrors:
    @pytest.mark.parametrize("code", ["42P01", "PGRST205", "42703", "PGRST204"])
    def test_schema_codes(self, code: str) -> None:
        store = make_store(lambda r: httpx.Response(400, json={"code": code, "message": "missing"}))
        with pytest.raises(SchemaError) as exc:
            store.query("ghost")
        assert exc.value.table == "ghost"

    def test_404_is_schema_error(self) -> None:
        store = make_store(lambda r: httpx.Response(404, text="not found"))
        with pytest.raises(SchemaError):
            store.count("ghost")

    def test_permission_denied(self) -> None:
        store = make_store(lambda r: httpx.Response(401, json={"code": "42501", "message": "denied"}))
        with pytest.raises(StoreRequestError) as exc:
            store.query("service_requests")
        assert exc.value.is_permission_denied

    def test_connect_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(StoreConnectionError):
            make_store(handler).count("service_requests")

    def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(StoreConnectionError):
            make_store(handler).count("service_requests")

    def test_reset_connection(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadError("connection reset by peer", request=request)

        with pytest.raises(StoreConnectionError) as exc:
            make_store(handler).fetch_all("service_requests")
        assert "ReadError" in str(exc.value)

    def test_url_without_scheme(self) -> None:
        store = RestRecordStore("store.test", api_key="anon-key")
        with pytest.raises(StoreConnectionError):
            store.count("service_requests")

    def test_non_json_success_body(self) -> None:
        store = make_store(lambda r: httpx.Response(200, text="<html>proxy</html>"))
        with pytest.raises(StoreRequestError) as exc:
            store.query("service_requests")
        assert "not valid JSON" in str(exc.value)
