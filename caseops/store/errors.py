"""Record store error taxonomy.

Every failure at the store boundary is one of these. Callers decide whether a
given error degrades a check, counts against a batch, or ends the run.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for record store failures."""


class StoreConnectionError(StoreError):
    """Raised when the store is unreachable or a request timed out."""


class SchemaError(StoreError):
    """Raised when a table or column does not exist."""

    def __init__(self, table: str, detail: str = "") -> None:
        self.table = table
        self.detail = detail
        super().__init__(f"Schema error on '{table}': {detail}" if detail else f"Table '{table}' not found")


class StoreRequestError(StoreError):
    """Raised when the store rejects a request (permissions, bad filter, ...)."""

    def __init__(self, status_code: int, detail: str) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Store error {status_code}: {detail}")

    @property
    def is_permission_denied(self) -> bool:
        return self.status_code in (401, 403)


class RecordValidationError(StoreError):
    """Raised when a record handed to a write is malformed."""
