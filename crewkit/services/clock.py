"""Time helpers.

Datetimes are stored as naive UTC. "Today" and calendar-day windows are
evaluated in ``settings.timezone`` and converted back to naive UTC bounds.
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from crewkit.config import settings
from crewkit.error import ValidationFailed


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_zone(tz_str: Optional[str] = None) -> ZoneInfo:
    name = (tz_str or "").strip() or settings.timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationFailed(f"Invalid timezone: {name} (e.g. America/Chicago, UTC)")


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_date(value: datetime, zone: Optional[ZoneInfo] = None) -> date:
    """Calendar date of a stored (naive UTC) datetime in the configured zone."""
    zone = zone or get_zone()
    return value.replace(tzinfo=timezone.utc).astimezone(zone).date()


def today(zone: Optional[ZoneInfo] = None) -> date:
    return local_date(utcnow(), zone)


def day_bounds(day: date, zone: Optional[ZoneInfo] = None) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day, as naive UTC."""
    zone = zone or get_zone()
    start = datetime(day.year, day.month, day.day, tzinfo=zone)
    end = start + timedelta(days=1)
    return to_utc_naive(start), to_utc_naive(end)


def month_bounds(year: int, month: int, zone: Optional[ZoneInfo] = None) -> tuple[datetime, datetime]:
    zone = zone or get_zone()
    start = datetime(year, month, 1, tzinfo=zone)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=zone)
    else:
        end = datetime(year, month + 1, 1, tzinfo=zone)
    return to_utc_naive(start), to_utc_naive(end)


def parse_dt_or_date(s: str, *, is_end: bool, assume_tz: Optional[ZoneInfo]) -> datetime:
    """
    Accepts:
      - "YYYY-MM-DD"
      - ISO datetime: "YYYY-MM-DDTHH:MM:SS", "...Z", "...+08:00"
    Rules:
      - date: start = local 00:00, end = next day 00:00 (half-open)
      - datetime without offset is read in assume_tz (UTC when absent)
      - result is naive UTC, matching what the database stores
    """
    s = (s or "").strip()
    if not s:
        raise ValidationFailed("start/end must not be empty")

    if len(s) == 10 and s[4] == "-" and s[7] == "-":
        try:
            d = date.fromisoformat(s)
        except ValueError:
            raise ValidationFailed(f"Invalid date: {s}, expected YYYY-MM-DD")

        local_dt = datetime(d.year, d.month, d.day)
        if is_end:
            local_dt = local_dt + timedelta(days=1)
        return to_utc_naive(local_dt.replace(tzinfo=assume_tz or timezone.utc))

    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed(f"Invalid datetime: {s}, e.g. 2026-01-12T08:30:00Z")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=assume_tz or timezone.utc)
    return to_utc_naive(parsed)
