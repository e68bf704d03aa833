from __future__ import annotations

import logging
import time as _time
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from punchclock.settings import get_settings

DEFAULT_TIMEZONE = "Europe/Berlin"

logger = logging.getLogger("punchclock.time")


def unix_now() -> int:
    return int(_time.time())


def resolve_now(now: int | None) -> int:
    if now is None:
        return unix_now()
    return int(now)


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "attendance_timezone_invalid",
            extra={"configured": raw_name, "fallback": DEFAULT_TIMEZONE},
        )
        return ZoneInfo(DEFAULT_TIMEZONE)


def parse_timezone(name: str | None) -> tzinfo:
    """Resolve an IANA name, falling back to the configured attendance zone."""
    if name is None or not name.strip():
        return attendance_timezone()
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {name}") from exc


def local_midnight_unix(day: date, tz: tzinfo) -> int:
    return int(datetime.combine(day, time.min, tzinfo=tz).timestamp())


def local_day_of(ts_unix: int, tz: tzinfo) -> date:
    return datetime.fromtimestamp(ts_unix, tz=timezone.utc).astimezone(tz).date()


def next_day(day: date) -> date:
    return day + timedelta(days=1)
