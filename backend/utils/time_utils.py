from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Current instant as a naive UTC datetime, the form stored in MongoDB."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc(value: Optional[Union[datetime, date]]) -> Optional[datetime]:
    """
    Normalize a date or datetime to a naive UTC datetime.

    Aware datetimes are converted to UTC first; naive ones are assumed to
    already be UTC. Plain dates become midnight of that day.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
