from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from punchclock.services.schema_guard import SCHEMA_HEAD

EXPECTED_HEAD = SCHEMA_HEAD
STALE_SESSION_SECONDS = 24 * 60 * 60
SAMPLE_LIMIT = 20


def collect_ledger_report(engine: Engine, *, now_unix_s: int) -> dict[str, Any]:
    """Read-only consistency report over ``user_states`` and ``entries``.

    Admin edits may leave inverted entries behind and an interrupted sweep
    may leave long-open sessions; both are reported, never repaired.
    """
    report: dict[str, Any] = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict[str, Any]) -> None:
        report["checks"].append({"name": name, "status": status, "details": details})

    tables = set(inspect(engine).get_table_names())

    with engine.connect() as conn:
        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0] for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})
        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        missing_tables = sorted({"user_states", "entries"} - tables)
        add("required_tables", "fail" if missing_tables else "ok", {"missing": missing_tables})
        if missing_tables:
            return report

        inverted = conn.execute(
            text(
                """
                select eid
                from entries
                where from_unix_s > to_unix_s
                order by eid
                limit :limit
                """
            ),
            {"limit": SAMPLE_LIMIT},
        ).fetchall()
        add("entries_inverted", "warn" if inverted else "ok", {"sample_eids": [row[0] for row in inverted]})

        orphan_entries = conn.execute(
            text(
                """
                select e.eid
                from entries e
                left join user_states s on s.uid = e.uid
                where s.uid is null
                order by e.eid
                limit :limit
                """
            ),
            {"limit": SAMPLE_LIMIT},
        ).fetchall()
        add(
            "entries_orphan_user",
            "fail" if orphan_entries else "ok",
            {"sample_eids": [row[0] for row in orphan_entries]},
        )

        stale_sessions = conn.execute(
            text(
                """
                select uid, since_unix_s
                from user_states
                where state = 'I' and since_unix_s < :cutoff
                order by since_unix_s
                limit :limit
                """
            ),
            {"cutoff": now_unix_s - STALE_SESSION_SECONDS, "limit": SAMPLE_LIMIT},
        ).fetchall()
        add(
            "stale_open_sessions",
            "warn" if stale_sessions else "ok",
            {"rows": [{"uid": row[0], "since": row[1]} for row in stale_sessions]},
        )

    return report
