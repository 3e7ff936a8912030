"""Settings shared by every environment; environment modules override them."""
import os


def env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "school_attendance"),
}

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
UPLOADS_DIR = os.getenv("UPLOADS_DIR", "uploads")
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Asia/Tashkent")

# Devices / provisioning agent
PROVISIONING_TOKEN = os.getenv("PROVISIONING_TOKEN", "")
DEVICE_AUTO_REGISTER_ENABLED = env_flag("DEVICE_AUTO_REGISTER_ENABLED", "0")
DEVICE_STUDENT_ID_STRATEGY = os.getenv("DEVICE_STUDENT_ID_STRATEGY", "numeric")
DEVICE_STUDENT_ID_LENGTH = int(os.getenv("DEVICE_STUDENT_ID_LENGTH", "10"))

# Webhook ingestion
MIN_SCAN_INTERVAL_SECONDS = int(os.getenv("MIN_SCAN_INTERVAL_SECONDS", "60"))
WEBHOOK_ENFORCE_SECRET = env_flag("WEBHOOK_ENFORCE_SECRET", "0")
WEBHOOK_SECRET_HEADER = os.getenv("WEBHOOK_SECRET_HEADER", "x-webhook-secret")

IMPORT_MAX_FILE_BYTES = int(os.getenv("IMPORT_MAX_FILE_BYTES", str(50 * 1024 * 1024)))
SSE_HEARTBEAT_SECONDS = int(os.getenv("SSE_HEARTBEAT_SECONDS", "30"))

SUPERADMIN_EMAIL = os.getenv("SUPERADMIN_EMAIL", "admin@school.local")
SUPERADMIN_PASSWORD = os.getenv("SUPERADMIN_PASSWORD", "admin123")
