from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from punchclock.models import UserStateKind


class EntryRead(BaseModel):
    eid: int
    uid: int
    from_unix_s: int = Field(serialization_alias="from")
    to_unix_s: int = Field(serialization_alias="to")
    valid: bool

    model_config = ConfigDict(from_attributes=True)


class EntryUpdateRequest(BaseModel):
    from_unix_s: int = Field(alias="from")
    to_unix_s: int = Field(alias="to")

    model_config = ConfigDict(populate_by_name=True)


class EntryDeleteResponse(BaseModel):
    ok: bool = True
    eid: int
    uid: int


class UserStateRead(BaseModel):
    uid: int
    state: UserStateKind
    since: int = Field(validation_alias="since_unix_s")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class UserStateProvisionResponse(UserStateRead):
    created: bool


class StatusResponse(BaseModel):
    uid: int
    state: UserStateKind
    since: int
    day_delta: int
    month_delta: int
    computed_at: int


class DeltaResponse(BaseModel):
    uid: int
    first_day: date
    last_day: date
    window_start: int
    window_end: int
    worked_s: int
    expected_s: int
    open_session_s: int
    delta_s: int
    computed_at: int


class SweepResponse(BaseModel):
    ran_at_unix_s: int
    disqualified: list[int]
    failed: list[int]
    skipped: int
    state_update_ok: bool
    released: int

