"""Create (or reset the password of) the platform super admin."""
from __future__ import annotations

import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.school_attendance.school_attendance.database.bootstrap import ensure_super_admin


def main() -> None:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    db_config = dict(settings.DB_CONFIG)
    email = settings.SUPERADMIN_EMAIL

    ensure_super_admin(db_config, email=email, password=settings.SUPERADMIN_PASSWORD)
    print(f"OK: super admin {email} -> {db_config.get('host')}/{db_config.get('database')}")


if __name__ == "__main__":
    main()
