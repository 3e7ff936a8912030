"""Run the periodic attendance jobs once (schedule with cron, e.g. every 5 minutes).

Usage: python scripts/run_jobs.py [mark-absent|close-days|device-health|purge-events|all]
"""
from __future__ import annotations

import importlib
import json
import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.school_attendance.school_attendance.container import build_container


def main(argv: list[str]) -> int:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    logging.basicConfig(
        level=getattr(logging, str(getattr(settings, "LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    container = build_container(db_config=dict(settings.DB_CONFIG), settings=settings)
    jobs = container.jobs
    actions = {
        "mark-absent": lambda: {"markedAbsent": jobs.mark_absent()},
        "close-days": lambda: {"closedDays": jobs.close_open_days()},
        "device-health": jobs.refresh_device_health,
        "purge-events": lambda: {"purgedEvents": jobs.purge_old_events()},
        "all": jobs.run_all,
    }

    name = argv[0] if argv else "all"
    if name not in actions:
        print(f"Unknown job: {name}. Choose one of: {', '.join(actions)}")
        return 2
    print(json.dumps(actions[name](), default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
