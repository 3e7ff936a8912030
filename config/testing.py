import os

from config.base import *  # noqa: F401,F403

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "school_attendance_test"),
}

DEBUG = False
TESTING = True

PROVISIONING_TOKEN = "test-provisioning-token"
LOG_DIR = os.getenv("LOG_DIR", "logs")

AUTO_INIT_DB = False
AUTO_SEED_DB = False
