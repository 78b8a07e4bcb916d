# FILE: ipd_billing/utils/timezone.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")


def now_ist() -> datetime:
    """
    Returns a *naive* datetime representing IST time.
    Ledger rows keep naive timestamps.
    """
    return datetime.now(IST).replace(tzinfo=None)


def today_ist() -> date:
    return now_ist().date()


def aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    DB may return naive UTC.
    Treat naive as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def ist_date(dt: Optional[datetime]) -> Optional[date]:
    """Calendar day (IST) of a stored timestamp."""
    u = aware_utc(dt)
    return u.astimezone(IST).date() if u else None


def parse_date(value) -> Optional[date]:
    """
    Lenient date parsing for stored/legacy values.
    Accepts date, datetime, ISO strings ("2024-05-01", "2024-05-01T10:00:00Z")
    and dd/mm/yyyy. Anything else -> None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in ("%d/%m/%Y", "%d-%m-%Y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None
