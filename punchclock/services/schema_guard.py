from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import BigInteger, Boolean, inspect, text
from sqlalchemy.engine import Engine

SCHEMA_HEAD = "0002_audit_logs"

REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "user_states": {"uid", "state", "since_unix_s"},
    "entries": {"eid", "uid", "from_unix_s", "to_unix_s", "valid"},
    "audit_logs": {"id", "action", "actor_type", "details"},
    "alembic_version": {"version_num"},
}

# A 32-bit column overflows for instants after 2038-01-19.
UNIX_SECOND_COLUMNS: dict[str, tuple[str, ...]] = {
    "user_states": ("since_unix_s",),
    "entries": ("from_unix_s", "to_unix_s"),
}

STATE_CHECK = "ck_user_states_state"
VALID_CHECK = "ck_entries_valid"


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


class _Report:
    def __init__(self) -> None:
        self.issues: list[str] = []
        self.warnings: list[str] = []


def _reflect_columns(inspector: Any, report: _Report) -> dict[str, dict[str, dict[str, Any]]]:
    present = set(inspector.get_table_names())
    reflected: dict[str, dict[str, dict[str, Any]]] = {}
    for table_name, required in REQUIRED_TABLE_COLUMNS.items():
        if table_name not in present:
            report.issues.append(f"MISSING_TABLE:{table_name}")
            continue
        columns = {str(item["name"]): item for item in inspector.get_columns(table_name)}
        reflected[table_name] = columns
        missing = sorted(required - set(columns))
        if missing:
            report.issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")
    return reflected


def _check_unix_second_width(reflected: dict[str, dict[str, dict[str, Any]]], report: _Report) -> None:
    for table_name, names in UNIX_SECOND_COLUMNS.items():
        columns = reflected.get(table_name, {})
        narrow = [name for name in names if name in columns and not isinstance(columns[name]["type"], BigInteger)]
        if narrow:
            report.issues.append(f"NARROW_UNIX_SECONDS:{table_name}:{','.join(narrow)}")


def _check_names(inspector: Any, table_name: str, report: _Report) -> set[str] | None:
    try:
        constraints = inspector.get_check_constraints(table_name)
    except NotImplementedError:
        report.warnings.append(f"CHECK_INSPECTION_UNSUPPORTED:{table_name}")
        return None
    return {str(item.get("name")) for item in constraints if item.get("name")}


def _check_state_constraints(
    inspector: Any,
    engine: Engine,
    reflected: dict[str, dict[str, dict[str, Any]]],
    report: _Report,
) -> None:
    if "state" in reflected.get("user_states", {}):
        names = _check_names(inspector, "user_states", report)
        if names is not None and STATE_CHECK not in names:
            report.issues.append(f"MISSING_CHECK:user_states:{STATE_CHECK}")

    valid = reflected.get("entries", {}).get("valid")
    if valid is None:
        return
    # A native boolean column cannot hold anything but true/false.
    native_boolean = getattr(getattr(engine, "dialect", None), "supports_native_boolean", True)
    if native_boolean and isinstance(valid["type"], Boolean):
        return
    names = _check_names(inspector, "entries", report)
    if names is not None and VALID_CHECK not in names:
        report.issues.append(f"MISSING_CHECK:entries:{VALID_CHECK}")


def _check_alembic_stamp(engine: Engine, report: _Report) -> None:
    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    except Exception as exc:  # pragma: no cover - reported, not raised
        report.issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")
        return
    version = str(row).strip() if row is not None else ""
    if not version:
        report.issues.append("ALEMBIC_VERSION_EMPTY")
    elif version != SCHEMA_HEAD:
        report.warnings.append(f"ALEMBIC_VERSION_NOT_HEAD:{version}")


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Check the stored shapes the clock, sweep and balance code rely on.

    Problems that break reads or writes are issues; anything merely
    unexpected (a stamp behind head, constraints the backend cannot
    reflect) is a warning.
    """
    checked_at_utc = datetime.now(timezone.utc)
    report = _Report()
    inspector = inspect(engine)

    reflected = _reflect_columns(inspector, report)
    _check_unix_second_width(reflected, report)
    _check_state_constraints(inspector, engine, reflected, report)
    if "alembic_version" in reflected:
        _check_alembic_stamp(engine, report)

    return SchemaGuardResult(
        ok=not report.issues,
        checked_at_utc=checked_at_utc,
        issues=report.issues,
        warnings=report.warnings,
    )
