from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from punchclock.models import AuditActorType, AuditLog

if TYPE_CHECKING:
    from punchclock.services.disqualify import SweepResult
    from punchclock.services.entries import DeletedEntry, EntryEdit

logger = logging.getLogger("punchclock.audit")

ACTION_ENTRY_EDITED = "ENTRY_EDITED"
ACTION_ENTRY_DELETED = "ENTRY_DELETED"
ACTION_SWEEP = "DISQUALIFICATION_SWEEP"
ACTION_USER_STATE_PROVISIONED = "USER_STATE_PROVISIONED"


@dataclass(frozen=True, slots=True)
class AuditActor:
    actor_type: AuditActorType
    actor_id: str
    ip: str | None = None
    user_agent: str | None = None
    request_id: str | None = None


SWEEP_WORKER = AuditActor(actor_type=AuditActorType.SYSTEM, actor_id="disqualify_worker")


def _bounds(from_unix_s: int, to_unix_s: int) -> dict[str, int]:
    return {"from": from_unix_s, "to": to_unix_s}


def _write(
    db: Session,
    actor: AuditActor,
    *,
    action: str,
    entity_type: str,
    entity_id: str,
    success: bool,
    details: dict[str, Any],
) -> bool:
    # Runs after the audited change is committed; a failure here is logged
    # and reported through the return value only.
    db.add(
        AuditLog(
            ts_utc=datetime.now(timezone.utc),
            actor_type=actor.actor_type,
            actor_id=actor.actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            ip=actor.ip,
            user_agent=actor.user_agent,
            success=success,
            details=details,
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={"request_id": actor.request_id, "action": action, "entity_id": entity_id},
        )
        return False

    logger.info(
        "audit_event",
        extra={
            "request_id": actor.request_id,
            "action": action,
            "actor_type": actor.actor_type.value,
            "actor_id": actor.actor_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "success": success,
        },
    )
    return True


def record_entry_edit(db: Session, actor: AuditActor, edit: EntryEdit) -> bool:
    entry = edit.entry
    return _write(
        db,
        actor,
        action=ACTION_ENTRY_EDITED,
        entity_type="entry",
        entity_id=str(entry.eid),
        success=True,
        details={
            "uid": entry.uid,
            "previous": _bounds(edit.previous_from_unix_s, edit.previous_to_unix_s),
            "current": _bounds(entry.from_unix_s, entry.to_unix_s),
            "inverted": edit.inverted,
        },
    )


def record_entry_delete(db: Session, actor: AuditActor, deleted: DeletedEntry) -> bool:
    return _write(
        db,
        actor,
        action=ACTION_ENTRY_DELETED,
        entity_type="entry",
        entity_id=str(deleted.eid),
        success=True,
        details={
            "uid": deleted.uid,
            "removed": _bounds(deleted.from_unix_s, deleted.to_unix_s),
            "valid": deleted.valid,
        },
    )


def record_sweep(db: Session, actor: AuditActor, result: SweepResult) -> bool:
    """Audit one sweep run.

    The run counts as unsuccessful when any invalid entry could not be
    written or the closing bulk update failed.
    """
    return _write(
        db,
        actor,
        action=ACTION_SWEEP,
        entity_type="user_states",
        entity_id="*",
        success=result.state_update_ok and not result.failed,
        details={
            "ran_at": result.ran_at_unix_s,
            "disqualified": list(result.disqualified),
            "failed": list(result.failed),
            "skipped": result.skipped,
            "released": result.released,
            "state_update_ok": result.state_update_ok,
        },
    )


def record_user_state_provisioned(db: Session, actor: AuditActor, *, uid: int, since_unix_s: int) -> bool:
    return _write(
        db,
        actor,
        action=ACTION_USER_STATE_PROVISIONED,
        entity_type="user_state",
        entity_id=str(uid),
        success=True,
        details={"since": since_unix_s},
    )
