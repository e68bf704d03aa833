#!/usr/bin/env python
from __future__ import annotations

import json
import os
from pathlib import Path

from punchclock.db import build_engine
from punchclock.services.ledger_health import collect_ledger_report
from punchclock.timeutil import unix_now


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    report = collect_ledger_report(build_engine(database_url), now_unix_s=unix_now())
    report["database_url"] = database_url
    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
