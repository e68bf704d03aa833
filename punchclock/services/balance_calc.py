from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, tzinfo

from punchclock.models import UserStateKind
from punchclock.timeutil import local_midnight_unix, next_day

EXPECTED_WORKDAY_SECONDS = 8 * 60 * 60
WEEKEND_WEEKDAYS = frozenset({5, 6})


@dataclass(frozen=True)
class Window:
    first_day: date
    last_day: date
    start_unix_s: int
    end_unix_s: int


@dataclass(frozen=True)
class DeltaBreakdown:
    worked_s: int
    expected_s: int
    open_session_s: int

    @property
    def delta_s(self) -> int:
        return self.worked_s - self.expected_s + self.open_session_s


def day_window(day: date, tz: tzinfo) -> Window:
    return Window(
        first_day=day,
        last_day=day,
        start_unix_s=local_midnight_unix(day, tz),
        end_unix_s=local_midnight_unix(next_day(day), tz),
    )


def month_to_date_window(day: date, tz: tzinfo) -> Window:
    first = day.replace(day=1)
    return Window(
        first_day=first,
        last_day=day,
        start_unix_s=local_midnight_unix(first, tz),
        end_unix_s=local_midnight_unix(next_day(day), tz),
    )


def is_workday(day: date) -> bool:
    # TODO: subtract public holidays once a holiday calendar is available.
    return day.weekday() not in WEEKEND_WEEKDAYS


def expected_seconds(first_day: date, last_day: date) -> int:
    total = 0
    day = first_day
    while day <= last_day:
        if is_workday(day):
            total += EXPECTED_WORKDAY_SECONDS
        day = next_day(day)
    return total


def sum_contained(spans: Iterable[tuple[int, int]], start_unix_s: int, end_unix_s: int) -> int:
    """Total length of the spans lying strictly inside ``(start, end)``.

    A span touching or crossing either edge of the window is left out
    entirely; partial overlaps are never prorated.
    """
    total = 0
    for from_unix_s, to_unix_s in spans:
        if from_unix_s > start_unix_s and to_unix_s < end_unix_s:
            total += to_unix_s - from_unix_s
    return total


def open_session_seconds(state: UserStateKind, since_unix_s: int, now_unix_s: int) -> int:
    if state != UserStateKind.IN:
        return 0
    return now_unix_s - since_unix_s


def compute_delta(
    *,
    window: Window,
    valid_spans: Iterable[tuple[int, int]],
    state: UserStateKind,
    since_unix_s: int,
    now_unix_s: int,
) -> DeltaBreakdown:
    return DeltaBreakdown(
        worked_s=sum_contained(valid_spans, window.start_unix_s, window.end_unix_s),
        expected_s=expected_seconds(window.first_day, window.last_day),
        open_session_s=open_session_seconds(state, since_unix_s, now_unix_s),
    )
