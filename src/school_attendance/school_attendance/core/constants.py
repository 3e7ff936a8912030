"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

DEFAULT_TIMEZONE = "Asia/Tashkent"
DEFAULT_LATE_THRESHOLD_MINUTES = 15
DEFAULT_ABSENCE_CUTOFF_MINUTES = 180
DEFAULT_CLASS_START_TIME = "08:00"
DEFAULT_GRADE_LEVEL = 1

MIN_SCAN_INTERVAL_SECONDS = 60
MAX_SESSION_MINUTES = 720
SUCCESS_SUB_EVENT_TYPE = 75

STUDENTS_PAGE_SIZE = 50
IMPORT_CHUNK_SIZE = 200
IMPORT_HEADER_SCAN_ROWS = 30
IMPORT_MAX_FILE_BYTES = 50 * 1024 * 1024
BEFORE_AFTER_LOG_LIMIT = 200

DEVICE_STUDENT_ID_DEFAULT_LENGTH = 10
DEVICE_STUDENT_ID_MIN_LENGTH = 6
DEVICE_STUDENT_ID_MAX_LENGTH = 20
DEVICE_STUDENT_ID_ATTEMPTS = 10

PROVISIONING_LOG_LIMIT = 200
DEVICE_OFFLINE_AFTER_HOURS = 2
EVENT_RETENTION_DAYS = 30
RECENT_EVENTS_LIMIT = 10

SSE_HEARTBEAT_SECONDS = 30
SSE_CLIENT_QUEUE_SIZE = 50

AUDIT_STAGE_MAX = 80
AUDIT_STATUS_MAX = 40
AUDIT_MESSAGE_MAX = 1000
