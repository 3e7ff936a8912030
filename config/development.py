import os

from config.base import *  # noqa: F401,F403
from config.base import env_flag

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DEBUG = True

# If enabled, app will apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = env_flag("AUTO_INIT_DB", "1")
# Optional: also create the super admin on startup
AUTO_SEED_DB = env_flag("AUTO_SEED_DB", "0")
