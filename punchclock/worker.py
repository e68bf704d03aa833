from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timezone

from punchclock.audit import SWEEP_WORKER, record_sweep
from punchclock.db import SessionLocal
from punchclock.services.disqualify import SweepResult, run_disqualification_sweep
from punchclock.settings import get_disqualify_run_at
from punchclock.timeutil import attendance_timezone

logger = logging.getLogger("punchclock.disqualify_worker")

MIN_INTERVAL_SECONDS = 15


def sweep_due(now_utc: datetime, last_run_day: date | None) -> date | None:
    """Return the local day to sweep for, or ``None`` when nothing is due."""
    local_now = now_utc.astimezone(attendance_timezone())
    if local_now.time() < get_disqualify_run_at():
        return None
    if last_run_day is not None and last_run_day >= local_now.date():
        return None
    return local_now.date()


def run_scheduled_sweep() -> SweepResult:
    db = SessionLocal()
    try:
        result = run_disqualification_sweep(db)
        record_sweep(db, SWEEP_WORKER, result)
        return result
    finally:
        db.close()


async def disqualify_worker_loop(stop_event: asyncio.Event, *, interval_seconds: int) -> None:
    interval_seconds = max(MIN_INTERVAL_SECONDS, int(interval_seconds))
    # Starting after today's run time must not sweep sessions opened this morning.
    last_run_day = sweep_due(datetime.now(timezone.utc), None)
    while not stop_event.is_set():
        due_day = sweep_due(datetime.now(timezone.utc), last_run_day)
        if due_day is not None:
            try:
                result = await asyncio.to_thread(run_scheduled_sweep)
            except Exception:
                logger.exception("disqualify_worker_tick_failed")
            else:
                last_run_day = due_day
                logger.info(
                    "disqualify_worker_tick",
                    extra={"local_day": due_day.isoformat(), **result.to_dict()},
                )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue
