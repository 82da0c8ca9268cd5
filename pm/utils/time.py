from datetime import datetime, timezone
from typing import Any


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def now_local() -> datetime:
    return datetime.now().astimezone()


def parse_created_at(value: Any) -> datetime:
    """
    Parse a server timestamp like '2006-01-02T15:04:05-07:00'.
    A trailing 'Z' means UTC; naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    s = str(value or "").strip()
    if not s:
        raise ValueError("missing created_at")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def format_created_at(dt: datetime) -> str:
    """Inverse of parse_created_at (seconds precision, numeric offset)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat(timespec="seconds")


def popup_time_text(dt: datetime) -> str:
    """'3:04:05 PM UTC Mon Jan 02 2006' (time, zone name, date)."""
    clock = dt.strftime("%I:%M:%S %p").lstrip("0")
    zone = dt.strftime("%Z") or "UTC"
    return f"{clock} {zone} {dt.strftime('%a %b %d %Y')}"
