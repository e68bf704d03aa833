from __future__ import annotations

from dataclasses import dataclass
from datetime import date, tzinfo
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from punchclock.errors import RecordLookupError
from punchclock.models import Entry, UserState, UserStateKind
from punchclock.services.balance_calc import (
    DeltaBreakdown,
    Window,
    compute_delta,
    day_window,
    month_to_date_window,
)
from punchclock.timeutil import attendance_timezone, resolve_now


@dataclass(frozen=True)
class DeltaResult:
    uid: int
    window: Window
    breakdown: DeltaBreakdown
    state: UserStateKind
    since_unix_s: int
    computed_at_unix_s: int

    @property
    def delta_s(self) -> int:
        return self.breakdown.delta_s

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "first_day": self.window.first_day,
            "last_day": self.window.last_day,
            "window_start": self.window.start_unix_s,
            "window_end": self.window.end_unix_s,
            "worked_s": self.breakdown.worked_s,
            "expected_s": self.breakdown.expected_s,
            "open_session_s": self.breakdown.open_session_s,
            "delta_s": self.delta_s,
            "computed_at": self.computed_at_unix_s,
        }


def _load_valid_spans(db: Session, uid: int, window: Window) -> list[tuple[int, int]]:
    try:
        rows = db.execute(
            select(Entry.from_unix_s, Entry.to_unix_s).where(
                Entry.uid == uid,
                Entry.valid.is_(True),
                Entry.from_unix_s > window.start_unix_s,
                Entry.to_unix_s < window.end_unix_s,
            )
        ).all()
    except SQLAlchemyError as exc:
        raise RecordLookupError(
            f"failed to get entries in date range for user {uid}",
            step="load_entries",
            uid=uid,
        ) from exc
    return [(int(from_unix_s), int(to_unix_s)) for from_unix_s, to_unix_s in rows]


def _load_user_state(db: Session, uid: int) -> UserState:
    try:
        user_state = db.get(UserState, uid)
    except SQLAlchemyError as exc:
        raise RecordLookupError(f"failed to get user info for user {uid}", step="load_user_state", uid=uid) from exc
    if user_state is None:
        raise RecordLookupError(f"no user_states row for user {uid}", step="load_user_state", uid=uid)
    return user_state


def _delta_for_window(db: Session, uid: int, window: Window, now: int | None) -> DeltaResult:
    # Plain reads, no lock: a session that closes between the two reads may be
    # missed or counted twice for this one computation.
    spans = _load_valid_spans(db, uid, window)
    user_state = _load_user_state(db, uid)
    now_unix_s = resolve_now(now)
    state = user_state.kind
    breakdown = compute_delta(
        window=window,
        valid_spans=spans,
        state=state,
        since_unix_s=user_state.since_unix_s,
        now_unix_s=now_unix_s,
    )
    return DeltaResult(
        uid=uid,
        window=window,
        breakdown=breakdown,
        state=state,
        since_unix_s=user_state.since_unix_s,
        computed_at_unix_s=now_unix_s,
    )


def _get_delta(
    db: Session,
    uid: int,
    day: date,
    window_for: Callable[[date, tzinfo], Window],
    *,
    tz: tzinfo | None,
    now: int | None,
) -> DeltaResult:
    window = window_for(day, tz or attendance_timezone())
    return _delta_for_window(db, uid, window, now)


def get_delta_for_day(
    db: Session,
    uid: int,
    day: date,
    *,
    tz: tzinfo | None = None,
    now: int | None = None,
) -> DeltaResult:
    return _get_delta(db, uid, day, day_window, tz=tz, now=now)


def get_delta_for_month(
    db: Session,
    uid: int,
    day: date,
    *,
    tz: tzinfo | None = None,
    now: int | None = None,
) -> DeltaResult:
    """Month-to-date balance: from the 1st up to and including ``day``."""
    return _get_delta(db, uid, day, month_to_date_window, tz=tz, now=now)
