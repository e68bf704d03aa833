#!/usr/bin/env python
"""Run one disqualification sweep against DATABASE_URL, e.g. from cron."""
from __future__ import annotations

import json
import sys

from punchclock.logging_utils import setup_json_logging
from punchclock.worker import run_scheduled_sweep


def main() -> int:
    setup_json_logging(service="punchclock-sweep")
    result = run_scheduled_sweep()
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0 if result.state_update_ok and not result.failed else 1


if __name__ == "__main__":
    sys.exit(main())
