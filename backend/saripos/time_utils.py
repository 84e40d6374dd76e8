from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

EXPIRING_SOON_DAYS = 30


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_date(value) -> Optional[date]:
    """
    Normalize an expiration-style date.

    Accepts None / "" (-> None), date, datetime (date part) or "YYYY-MM-DD"
    (a full ISO datetime string is accepted and truncated to its date).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if len(s) > 10:
        dt = parse_iso_datetime(s)
        return dt.date() if dt else None
    return date.fromisoformat(s)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def to_iso_date(d: Optional[date]) -> Optional[str]:
    return d.isoformat() if d is not None else None


def expiration_status(expiration_date: Optional[date], today: Optional[date] = None) -> Optional[str]:
    """
    Classify a batch expiration date.

    Returns None when there is no date, otherwise "expired",
    "expiring_soon" (within EXPIRING_SOON_DAYS) or "ok".
    """
    if expiration_date is None:
        return None
    today = today or utcnow().date()
    if expiration_date < today:
        return "expired"
    if expiration_date < today + timedelta(days=EXPIRING_SOON_DAYS):
        return "expiring_soon"
    return "ok"
