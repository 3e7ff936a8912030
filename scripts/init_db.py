"""Create the database and apply database/schema.sql.

Usage: python scripts/init_db.py [--seed]

``--seed`` also creates the super admin from SUPERADMIN_EMAIL / SUPERADMIN_PASSWORD.
"""
from __future__ import annotations

import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.school_attendance.school_attendance.database.bootstrap import apply_schema, ensure_super_admin, list_tables

SCHEMA_PATH = REPO_ROOT / "database" / "schema.sql"


def main(argv: list[str]) -> int:
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    db_config = dict(settings.DB_CONFIG)
    target = f"{db_config.get('user')}@{db_config.get('host')}:{db_config.get('port', 3306)}/{db_config.get('database')}"

    apply_schema(db_config, schema_path=SCHEMA_PATH)
    tables = list_tables(db_config)
    print(f"OK: schema applied -> {target} ({len(tables)} tables: {', '.join(tables)})")

    if "--seed" in argv:
        ensure_super_admin(db_config, email=settings.SUPERADMIN_EMAIL, password=settings.SUPERADMIN_PASSWORD)
        print(f"OK: super admin {settings.SUPERADMIN_EMAIL}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
