from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from punchclock.errors import ScanError
from punchclock.models import Entry, UserState, UserStateKind
from punchclock.timeutil import resolve_now

logger = logging.getLogger("punchclock.disqualify")


@dataclass(frozen=True, slots=True)
class OpenSession:
    uid: int
    since_unix_s: int


@dataclass(slots=True)
class SweepResult:
    ran_at_unix_s: int
    disqualified: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    skipped: int = 0
    state_update_ok: bool = True
    released: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "ran_at_unix_s": self.ran_at_unix_s,
            "disqualified": list(self.disqualified),
            "failed": list(self.failed),
            "skipped": self.skipped,
            "state_update_ok": self.state_update_ok,
            "released": self.released,
        }


def _scan_open_sessions(db: Session) -> tuple[list[OpenSession], int]:
    rows = db.execute(
        select(UserState.uid, UserState.since_unix_s)
        .where(UserState.state == UserStateKind.IN.value)
        .order_by(UserState.uid)
    ).all()

    sessions: list[OpenSession] = []
    skipped = 0
    for uid, since in rows:
        if not isinstance(uid, int) or not isinstance(since, int):
            skipped += 1
            error = ScanError(
                f"user_states row has malformed uid/since: {uid!r}/{since!r}",
                step="scan_open_sessions",
                uid=uid if isinstance(uid, int) else None,
            )
            logger.error("disqualify_scan_failed", extra=error.log_context())
            continue
        sessions.append(OpenSession(uid=uid, since_unix_s=since))
    return sessions, skipped


def _insert_invalid_entry(db: Session, session: OpenSession, now: int) -> bool:
    db.add(Entry(uid=session.uid, from_unix_s=session.since_unix_s, to_unix_s=now, valid=False))
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "disqualify_entry_insert_failed",
            extra={"uid": session.uid, "since": session.since_unix_s},
        )
        return False
    return True


def _release_sessions(db: Session, sessions: list[OpenSession], now: int) -> int:
    # Only rows still holding the scanned session are flipped; a user who
    # clocked out and in again meanwhile keeps the new session.
    matches = [
        and_(UserState.uid == item.uid, UserState.since_unix_s == item.since_unix_s)
        for item in sessions
    ]
    result = db.execute(
        update(UserState)
        .where(UserState.state == UserStateKind.IN.value, or_(*matches))
        .values(state=UserStateKind.OUT.value, since_unix_s=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return int(result.rowcount or 0)


def run_disqualification_sweep(db: Session, *, now: int | None = None) -> SweepResult:
    """Force-close every open session as an invalid entry.

    Not atomic across its two steps: entries are inserted one commit at a
    time, then the scanned users are flipped to out in one bulk update that
    runs even when some inserts failed. A crash in between leaves a user
    disqualified but still shown as in until the next run.
    """
    ts = resolve_now(now)
    result = SweepResult(ran_at_unix_s=ts)

    try:
        sessions, result.skipped = _scan_open_sessions(db)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("disqualify_select_failed")
        result.state_update_ok = False
        return result

    if not sessions:
        db.rollback()
        logger.info("disqualify_sweep_empty", extra={"ran_at": ts, "skipped": result.skipped})
        return result

    for session in sessions:
        if _insert_invalid_entry(db, session, ts):
            result.disqualified.append(session.uid)
        else:
            result.failed.append(session.uid)

    try:
        result.released = _release_sessions(db, sessions, ts)
    except SQLAlchemyError:
        db.rollback()
        result.state_update_ok = False
        logger.exception("disqualify_state_update_failed", extra={"uids": [item.uid for item in sessions]})

    logger.info(
        "disqualify_sweep_complete",
        extra={
            "ran_at": ts,
            "disqualified": len(result.disqualified),
            "failed": len(result.failed),
            "skipped": result.skipped,
            "released": result.released,
            "state_update_ok": result.state_update_ok,
        },
    )
    return result
