"""Record vocabulary shared by every engine.

Records travel as plain dicts exactly as the store returns them, so that a
backup reproduces every field, known or not.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

Record = dict[str, Any]

STATUSES = ("pending", "in_progress", "completed", "cancelled")
PRIORITIES = ("low", "normal", "high", "urgent")

DEFAULT_STATUS = "pending"
DEFAULT_PRIORITY = "normal"

SERVICE_TYPES = (
    "Aulas de Inteligência Artificial",
    "Mentoria de IA Personalizada",
    "Suporte e Assistência Técnica",
    "Consultoria e Treinamentos",
    "Cibersegurança",
    "Desenvolvimento de Sistemas",
    "Manutenção e Auxílio Tecnológico",
)

EXPECTED_COLUMNS = (
    "id", "first_name", "last_name", "email", "phone", "service_type",
    "description", "status", "priority", "estimated_value", "notes",
    "assigned_to", "created_at", "updated_at", "completed_at",
)

SEARCH_COLUMNS = ("first_name", "last_name", "email", "description")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``; naive values are taken as UTC.
    Raises ValueError for anything unparseable.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"not a timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def try_parse_timestamp(value: Any) -> datetime | None:
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        return None


def display_name(record: Record) -> str:
    name = f"{record.get('first_name') or ''} {record.get('last_name') or ''}".strip()
    return name or str(record.get("email") or record.get("id", "?"))
