from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from punchclock.errors import RecordLookupError, ScanError, TransactionError
from punchclock.models import Entry, UserState, UserStateKind
from punchclock.timeutil import resolve_now

logger = logging.getLogger("punchclock.clock")


def _rollback(db: Session, *, uid: int, step: str) -> None:
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.exception("rollback_failed", extra={"uid": uid, "step": step})


def _lock_user_state(db: Session, uid: int, *, step: str) -> tuple[UserState, UserStateKind]:
    try:
        user_state = db.scalar(
            select(UserState).where(UserState.uid == uid).with_for_update()
        )
    except SQLAlchemyError as exc:
        _rollback(db, uid=uid, step=step)
        raise TransactionError(
            f"failed to read user_states row for user {uid}",
            step=step,
            uid=uid,
        ) from exc

    if user_state is None:
        _rollback(db, uid=uid, step=step)
        raise TransactionError(
            f"failed to find a row in user_states for user {uid}",
            step=step,
            uid=uid,
        ) from RecordLookupError(f"no user_states row for user {uid}", step=step, uid=uid)

    try:
        kind = user_state.kind
    except ScanError as exc:
        _rollback(db, uid=uid, step=step)
        raise TransactionError(
            f"user_states row for user {uid} is malformed",
            step=step,
            uid=uid,
        ) from exc
    return user_state, kind


def _commit(db: Session, *, uid: int, step: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        _rollback(db, uid=uid, step=step)
        raise TransactionError(f"failed to commit transition for user {uid}", step=step, uid=uid) from exc


def clock_in(db: Session, uid: int, *, now: int | None = None) -> UserState:
    """Open a session for ``uid``.

    Clocking in while already in is a no-op: no entry is written and
    ``since`` keeps the original start of the session.
    """
    user_state, kind = _lock_user_state(db, uid, step="lookup_user_state")
    if kind == UserStateKind.IN:
        _rollback(db, uid=uid, step="noop_clock_in")
        logger.info("clock_in_noop", extra={"uid": uid, "since": user_state.since_unix_s})
        return user_state

    ts = resolve_now(now)
    user_state.state = UserStateKind.IN.value
    user_state.since_unix_s = ts
    _commit(db, uid=uid, step="commit_clock_in")
    db.refresh(user_state)
    logger.info("clock_in", extra={"uid": uid, "since": ts})
    return user_state


def clock_out(db: Session, uid: int, *, now: int | None = None) -> UserState:
    """Close the open session of ``uid`` into a valid ledger entry.

    The entry and the state flip share one timestamp and one commit, so the
    entry's ``to_unix_s`` always equals the new ``since_unix_s``.
    """
    user_state, kind = _lock_user_state(db, uid, step="lookup_user_state")
    if kind == UserStateKind.OUT:
        _rollback(db, uid=uid, step="noop_clock_out")
        logger.info("clock_out_noop", extra={"uid": uid, "since": user_state.since_unix_s})
        return user_state

    ts = resolve_now(now)
    started = user_state.since_unix_s
    db.add(Entry(uid=uid, from_unix_s=started, to_unix_s=ts, valid=True))
    user_state.state = UserStateKind.OUT.value
    user_state.since_unix_s = ts
    _commit(db, uid=uid, step="commit_clock_out")
    db.refresh(user_state)
    logger.info(
        "clock_out",
        extra={"uid": uid, "from": started, "to": ts, "duration_s": ts - started},
    )
    return user_state
