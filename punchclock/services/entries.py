from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import tzinfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from punchclock.errors import RecordLookupError, ScanError, TransactionError
from punchclock.models import Entry
from punchclock.timeutil import attendance_timezone, local_day_of, local_midnight_unix

logger = logging.getLogger("punchclock.entries")


@dataclass(frozen=True)
class EntryEdit:
    entry: Entry
    previous_from_unix_s: int
    previous_to_unix_s: int

    @property
    def inverted(self) -> bool:
        return self.entry.from_unix_s > self.entry.to_unix_s


@dataclass(frozen=True)
class DeletedEntry:
    eid: int
    uid: int
    from_unix_s: int
    to_unix_s: int
    valid: bool


def _check_entry_row(entry: Entry) -> Entry:
    if not isinstance(entry.from_unix_s, int) or not isinstance(entry.to_unix_s, int):
        raise ScanError(
            f"entry {entry.eid} has malformed bounds {entry.from_unix_s!r}/{entry.to_unix_s!r}",
            step="scan_entry",
            uid=entry.uid,
        )
    return entry


def list_entries(db: Session, uid: int, *, tz: tzinfo | None = None) -> dict[int, list[Entry]]:
    """Group every entry of ``uid`` by the local day its session started.

    Keys are the Unix second of local midnight of that day. An entry running
    past midnight stays with the day of its ``from_unix_s``.
    """
    zone = tz or attendance_timezone()
    try:
        entries = db.scalars(
            select(Entry)
            .where(Entry.uid == uid)
            .order_by(Entry.from_unix_s.asc(), Entry.eid.asc())
        ).all()
    except SQLAlchemyError as exc:
        raise RecordLookupError(f"failed to list entries for user {uid}", step="list_entries", uid=uid) from exc

    days: dict[int, list[Entry]] = {}
    for entry in entries:
        _check_entry_row(entry)
        key = local_midnight_unix(local_day_of(entry.from_unix_s, zone), zone)
        days.setdefault(key, []).append(entry)
    return days


def _resolve_entry(db: Session, eid: int) -> Entry:
    entry = db.get(Entry, eid)
    if entry is None:
        raise RecordLookupError(f"entry {eid} not found", step="lookup_entry")
    return entry


def edit_entry(db: Session, eid: int, *, from_unix_s: int, to_unix_s: int) -> EntryEdit:
    """Overwrite the bounds of an entry.

    Administrative override: no ordering or sign check and no user state
    update. Returns the refreshed entry with the bounds it replaced.
    """
    entry = _resolve_entry(db, eid)
    previous = (entry.from_unix_s, entry.to_unix_s)
    entry.from_unix_s = from_unix_s
    entry.to_unix_s = to_unix_s
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransactionError(f"failed to edit entry {eid}", step="edit_entry", uid=entry.uid) from exc
    db.refresh(entry)
    logger.info(
        "entry_edited",
        extra={
            "eid": eid,
            "uid": entry.uid,
            "previous": list(previous),
            "from": from_unix_s,
            "to": to_unix_s,
            "inverted": from_unix_s > to_unix_s,
        },
    )
    return EntryEdit(entry=entry, previous_from_unix_s=previous[0], previous_to_unix_s=previous[1])


def delete_entry(db: Session, eid: int) -> DeletedEntry:
    entry = _resolve_entry(db, eid)
    deleted = DeletedEntry(
        eid=entry.eid,
        uid=entry.uid,
        from_unix_s=entry.from_unix_s,
        to_unix_s=entry.to_unix_s,
        valid=entry.valid,
    )
    uid = deleted.uid
    db.delete(entry)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransactionError(f"failed to delete entry {eid}", step="delete_entry", uid=uid) from exc
    logger.info("entry_deleted", extra={"eid": eid, "uid": uid})
    return deleted
