from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from punchclock.errors import TransactionError
from punchclock.models import UserState, UserStateKind
from punchclock.timeutil import resolve_now

logger = logging.getLogger("punchclock.user_states")


def provision_user_state(db: Session, uid: int, *, now: int | None = None) -> tuple[UserState, bool]:
    """Create the clocked-out state row for a newly known user.

    Returns ``(row, created)``. An existing row is returned untouched.
    """
    existing = db.get(UserState, uid)
    if existing is not None:
        return existing, False

    user_state = UserState(uid=uid, state=UserStateKind.OUT.value, since_unix_s=resolve_now(now))
    db.add(user_state)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race against a concurrent provisioning of the same user.
        db.rollback()
        existing = db.get(UserState, uid)
        if existing is None:
            raise TransactionError(
                f"failed to provision user_states row for user {uid}",
                step="provision_user_state",
                uid=uid,
            )
        return existing, False
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransactionError(
            f"failed to provision user_states row for user {uid}",
            step="provision_user_state",
            uid=uid,
        ) from exc

    db.refresh(user_state)
    logger.info("user_state_provisioned", extra={"uid": uid, "since": user_state.since_unix_s})
    return user_state, True
