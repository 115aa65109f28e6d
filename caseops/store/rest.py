"""httpx-based client for a PostgREST-compatible record store.

All methods return plain dict records or raise StoreConnectionError /
SchemaError / StoreRequestError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from caseops.records import SEARCH_COLUMNS, Record
from caseops.store.base import Filter, RecordStore, UpsertOutcome
from caseops.store.errors import (
    RecordValidationError,
    SchemaError,
    StoreConnectionError,
    StoreRequestError,
)

logger = logging.getLogger(__name__)

# PostgREST / Postgres codes meaning "table or column does not exist"
SCHEMA_ERROR_CODES = {"42P01", "PGRST205", "42703", "PGRST204"}

PAGE_SIZE = 1000


def _encode_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _content_range_total(header: str | None) -> int | None:
    """Parse the total out of ``Content-Range: 0-9/42`` (or ``*/0``)."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        raise StoreRequestError(resp.status_code, f"Response is not valid JSON: {resp.text[:200]!r}")


class RestRecordStore(RecordStore):
    """Synchronous httpx client for ``{base_url}/rest/v1/{table}``."""

    name = "rest"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        service_key: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._service_key = service_key
        self._timeout = timeout
        self._transport = transport

    def _headers(self, write: bool = False, prefer: str | None = None) -> dict[str, str]:
        key = self._service_key if write and self._service_key else self._api_key
        h: dict[str, str] = {"Accept": "application/json"}
        if key:
            h["apikey"] = key
            h["Authorization"] = f"Bearer {key}"
        if prefer:
            h["Prefer"] = prefer
        return h

    def _url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    def _request(
        self,
        method: str,
        table: str,
        params: list[tuple[str, str]] | None = None,
        json_data: Any = None,
        write: bool = False,
        prefer: str | None = None,
    ) -> httpx.Response:
        """Perform one request against a table endpoint."""
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                resp = client.request(
                    method,
                    self._url(table),
                    params=params,
                    json=json_data,
                    headers=self._headers(write=write, prefer=prefer),
                )
        except httpx.ConnectError:
            raise StoreConnectionError("Record store is offline or unreachable")
        except httpx.TimeoutException:
            raise StoreConnectionError("Record store request timed out")
        except httpx.TransportError as e:
            raise StoreConnectionError(f"Record store transport error: {type(e).__name__}: {e}")
        except httpx.InvalidURL as e:
            raise StoreConnectionError(f"Invalid record store URL: {e}")

        if resp.status_code >= 400:
            code = ""
            detail = resp.text
            try:
                body = resp.json()
                code = str(body.get("code", ""))
                detail = body.get("message", resp.text)
            except (ValueError, AttributeError):
                pass
            if resp.status_code == 404 or code in SCHEMA_ERROR_CODES:
                raise SchemaError(table, str(detail))
            raise StoreRequestError(resp.status_code, str(detail))
        return resp

    @staticmethod
    def _filter_params(filters: list[Filter] | None) -> list[tuple[str, str]]:
        return [(f.column, f"{f.op}.{_encode_value(f.value)}") for f in filters or []]

    # ── Reads ────────────────────────────────────────────────────────────

    def query(
        self,
        table: str,
        filters: list[Filter] | None = None,
        order: str | None = None,
        descending: bool = False,
        offset: int = 0,
        limit: int | None = None,
        search: str | None = None,
    ) -> tuple[list[Record], int]:
        params: list[tuple[str, str]] = [("select", "*")]
        params += self._filter_params(filters)
        if search:
            term = search.replace(",", " ").replace("(", " ").replace(")", " ").strip()
            clauses = ",".join(f"{col}.ilike.*{term}*" for col in SEARCH_COLUMNS)
            params.append(("or", f"({clauses})"))
        if order:
            params.append(("order", f"{order}.{'desc' if descending else 'asc'}"))
        if offset:
            params.append(("offset", str(offset)))
        if limit is not None:
            params.append(("limit", str(limit)))

        resp = self._request("GET", table, params=params, prefer="count=exact")
        rows = _json(resp)
        total = _content_range_total(resp.headers.get("content-range"))
        return rows, total if total is not None else len(rows)

    def count(self, table: str, filters: list[Filter] | None = None) -> int:
        params = [("select", "id"), ("limit", "0")] + self._filter_params(filters)
        resp = self._request("GET", table, params=params, prefer="count=exact")
        total = _content_range_total(resp.headers.get("content-range"))
        return total or 0

    def fetch_all(
        self, table: str, order: str | None = "created_at", descending: bool = False,
    ) -> list[Record]:
        """Page through the whole table, PAGE_SIZE rows at a time."""
        records: list[Record] = []
        offset = 0
        while True:
            page, _ = self.query(
                table, order=order, descending=descending, offset=offset, limit=PAGE_SIZE,
            )
            records.extend(page)
            if len(page) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
        logger.debug("Fetched %d rows from %s", len(records), table)
        return records

    # ── Writes ───────────────────────────────────────────────────────────

    def insert(self, table: str, record: Record) -> Record:
        resp = self._request(
            "POST", table, json_data=record, write=True, prefer="return=representation",
        )
        rows = _json(resp)
        return rows[0] if rows else record

    def update(self, table: str, record_id: Any, fields: dict[str, Any]) -> None:
        self._request(
            "PATCH", table, params=[("id", f"eq.{record_id}")], json_data=fields,
            write=True, prefer="return=minimal",
        )

    def delete(self, table: str, record_id: Any) -> None:
        self._request(
            "DELETE", table, params=[("id", f"eq.{record_id}")],
            write=True, prefer="return=minimal",
        )

    def upsert(self, table: str, record: Record, conflict_key: str = "id") -> UpsertOutcome:
        if record.get(conflict_key) in (None, ""):
            raise RecordValidationError(f"Record has no '{conflict_key}'")
        resp = self._request(
            "POST", table,
            params=[("on_conflict", conflict_key)],
            json_data=record,
            write=True,
            prefer="resolution=ignore-duplicates,return=representation",
        )
        rows = _json(resp)
        return UpsertOutcome.INSERTED if rows else UpsertOutcome.SKIPPED
