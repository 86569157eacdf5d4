from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from storage (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_ms(started_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    if not started_at:
        return 0
    now = now or utcnow()
    return int((now - ensure_utc(started_at)).total_seconds() * 1000)


def normalize_payload(value: Any) -> Any:
    """
    Normalize trigger data and step config into plain JSON values.

    Mapping keys become strings, datetimes become ISO-8601 strings and
    tuples/sets become lists, so code downstream only ever performs
    string-keyed lookups on JSON-compatible data.
    """
    if isinstance(value, dict):
        return {str(k.value if isinstance(k, Enum) else k): normalize_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [normalize_payload(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return normalize_payload(value.value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value
