"""UTC timestamp helpers shared by models and managers"""

from datetime import date, datetime, time, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Any) -> Any:
    """
    Coerce dates, naive datetimes and ISO strings into aware UTC datetimes.
    Anything else (including None) is returned untouched for pydantic to judge.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    return value
