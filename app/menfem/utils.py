from __future__ import annotations

import uuid
from datetime import datetime, timezone


def new_id() -> str:
    """Opaque primary key: 32 hex chars."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    # Naive UTC, matching DateTime(timezone=False) columns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clean(value: object) -> str | None:
    """Strip form/JSON input; blank becomes None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_datetime(value: object) -> datetime | None:
    """Parse ISO-8601 input into naive UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _to_naive_utc(datetime.fromisoformat(text))


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


def parse_bool(value: object) -> bool:
    """JSON booleans pass through; form strings must be one of the known spellings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ValueError(f"Not a boolean: {value!r}")
