from datetime import date, datetime, tzinfo

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from punchclock.db import get_db
from punchclock.errors import ApiError
from punchclock.schemas import DeltaResponse, EntryRead, StatusResponse
from punchclock.security import require_user
from punchclock.services.balance import get_delta_for_day, get_delta_for_month
from punchclock.services.clock import clock_in, clock_out
from punchclock.services.entries import list_entries
from punchclock.timeutil import parse_timezone, unix_now

router = APIRouter(prefix="/u", tags=["attendance"])


def _resolve_tz(raw: str | None) -> tzinfo:
    try:
        return parse_timezone(raw)
    except ValueError as exc:
        raise ApiError(status_code=422, code="INVALID_TIMEZONE", message=str(exc)) from exc


def _build_status(db: Session, uid: int, tz: tzinfo) -> StatusResponse:
    now = unix_now()
    today = datetime.fromtimestamp(now, tz=tz).date()
    day_result = get_delta_for_day(db, uid, today, tz=tz, now=now)
    month_result = get_delta_for_month(db, uid, today, tz=tz, now=now)
    return StatusResponse(
        uid=uid,
        state=day_result.state,
        since=day_result.since_unix_s,
        day_delta=day_result.delta_s,
        month_delta=month_result.delta_s,
        computed_at=now,
    )


@router.put("/clock/in", response_model=StatusResponse)
def put_clock_in(
    request: Request,
    tz: str | None = Query(default=None),
    uid: int = Depends(require_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    zone = _resolve_tz(tz)
    clock_in(db, uid)
    request.state.uid = uid
    return _build_status(db, uid, zone)


@router.put("/clock/out", response_model=StatusResponse)
def put_clock_out(
    request: Request,
    tz: str | None = Query(default=None),
    uid: int = Depends(require_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    zone = _resolve_tz(tz)
    clock_out(db, uid)
    request.state.uid = uid
    return _build_status(db, uid, zone)


@router.get("/status", response_model=StatusResponse)
def get_status(
    tz: str | None = Query(default=None),
    uid: int = Depends(require_user),
    db: Session = Depends(get_db),
) -> StatusResponse:
    return _build_status(db, uid, _resolve_tz(tz))


@router.get("/entries", response_model=dict[int, list[EntryRead]])
def get_entries(
    tz: str | None = Query(default=None),
    uid: int = Depends(require_user),
    db: Session = Depends(get_db),
) -> dict[int, list[EntryRead]]:
    days = list_entries(db, uid, tz=_resolve_tz(tz))
    return {
        day_start: [EntryRead.model_validate(entry) for entry in entries]
        for day_start, entries in days.items()
    }


@router.get("/delta/day", response_model=DeltaResponse)
def get_day_delta(
    day: date | None = Query(default=None, alias="date"),
    tz: str | None = Query(default=None),
    uid: int = Depends(require_user),
    db: Session = Depends(get_db),
) -> DeltaResponse:
    zone = _resolve_tz(tz)
    target = day or datetime.now(zone).date()
    return DeltaResponse(**get_delta_for_day(db, uid, target, tz=zone).to_dict())


@router.get("/delta/month", response_model=DeltaResponse)
def get_month_delta(
    day: date | None = Query(default=None, alias="date"),
    tz: str | None = Query(default=None),
    uid: int = Depends(require_user),
    db: Session = Depends(get_db),
) -> DeltaResponse:
    zone = _resolve_tz(tz)
    target = day or datetime.now(zone).date()
    return DeltaResponse(**get_delta_for_month(db, uid, target, tz=zone).to_dict())
