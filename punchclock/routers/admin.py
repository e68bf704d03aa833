from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from punchclock.audit import (
    AuditActor,
    record_entry_delete,
    record_entry_edit,
    record_sweep,
    record_user_state_provisioned,
)
from punchclock.db import get_db
from punchclock.models import AuditActorType
from punchclock.schemas import (
    EntryDeleteResponse,
    EntryRead,
    EntryUpdateRequest,
    SweepResponse,
    UserStateProvisionResponse,
    UserStateRead,
)
from punchclock.security import require_admin
from punchclock.services.disqualify import run_disqualification_sweep
from punchclock.services.entries import delete_entry, edit_entry
from punchclock.services.user_states import provision_user_state

router = APIRouter(prefix="/a", tags=["admin"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _admin_actor(request: Request, claims: dict[str, Any]) -> AuditActor:
    return AuditActor(
        actor_type=AuditActorType.ADMIN,
        actor_id=str(claims.get("sub") or "admin"),
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )


@router.put("/entries/{eid}", response_model=EntryRead)
def put_entry(
    eid: int,
    payload: EntryUpdateRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EntryRead:
    edit = edit_entry(db, eid, from_unix_s=payload.from_unix_s, to_unix_s=payload.to_unix_s)
    result = EntryRead.model_validate(edit.entry)
    record_entry_edit(db, _admin_actor(request, claims), edit)
    return result


@router.delete("/entries/{eid}", response_model=EntryDeleteResponse)
def remove_entry(
    eid: int,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> EntryDeleteResponse:
    deleted = delete_entry(db, eid)
    record_entry_delete(db, _admin_actor(request, claims), deleted)
    return EntryDeleteResponse(eid=deleted.eid, uid=deleted.uid)


@router.post("/disqualify", response_model=SweepResponse)
def post_disqualify(
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> SweepResponse:
    result = run_disqualification_sweep(db)
    record_sweep(db, _admin_actor(request, claims), result)
    return SweepResponse(**result.to_dict())


@router.put("/users/{uid}/state", response_model=UserStateProvisionResponse)
def put_user_state(
    uid: int,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserStateProvisionResponse:
    user_state, created = provision_user_state(db, uid)
    state = UserStateRead.model_validate(user_state)
    if created:
        record_user_state_provisioned(db, _admin_actor(request, claims), uid=uid, since_unix_s=state.since)
    return UserStateProvisionResponse(**state.model_dump(), created=created)
