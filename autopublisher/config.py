import os
import logging
import logging.config
from pathlib import Path

# Base Paths
APP_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = APP_DIR.parent

# Resources
STAGING_DIR = Path(os.getenv("STAGING_DIR", str(PROJECT_ROOT / "staging")))  # HTTP uploads land here before ingest

# Logging Setup
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_FILE_PATH = os.getenv(
    "LOG_FILE_PATH",
    str((PROJECT_ROOT / "logs" / "app.log").resolve()),
)

LOG_DIR = Path(LOG_FILE_PATH).parent
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": LOG_FORMAT,
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
        "file": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "filename": LOG_FILE_PATH,
            "maxBytes": 10 * 1024 * 1024,  # 10 MB
            "backupCount": 5,
            "encoding": "utf8",
        },
    },
    "loggers": {
        "autopublisher": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        # Let uvicorn log to console using its own handlers
        "uvicorn.error": {"level": "INFO"},
        "uvicorn.access": {"level": "INFO"},
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
}

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger("autopublisher")


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


# -----------------------------------------------------------------------------
# State backend (per-trace documents and connected YouTube accounts)
# -----------------------------------------------------------------------------

STATE_BACKEND = os.getenv("STATE_BACKEND", "memory").lower()  # memory | firestore
TRACE_COLLECTION = os.getenv("TRACE_COLLECTION", "pipeline_traces")
TOKEN_COLLECTION = os.getenv("TOKEN_COLLECTION", "youtube_tokens")

# -----------------------------------------------------------------------------
# Object storage
# -----------------------------------------------------------------------------

STORAGE_TYPE = os.getenv("STORAGE_TYPE", "local").lower()  # local | s3
LOCAL_STORAGE_PATH = os.getenv("LOCAL_STORAGE_PATH", "output")
LOCAL_STORAGE_URL = os.getenv("LOCAL_STORAGE_URL", "http://localhost:3000/files")

AWS_S3_BUCKET_NAME = os.getenv("AWS_S3_BUCKET_NAME", "")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
AWS_S3_ENDPOINT_URL = os.getenv("AWS_S3_ENDPOINT_URL", "")  # S3-compatible endpoints (R2, MinIO)
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID", "")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY", "")
S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL", "")

# -----------------------------------------------------------------------------
# Generative AI
# -----------------------------------------------------------------------------

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GEMINI_TEXT_MODELS = _split_csv(
    os.getenv("GEMINI_TEXT_MODELS", "gemini-2.5-flash,gemini-2.5-flash-lite,gemini-2.5-pro")
)
GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.0-flash-exp")

# -----------------------------------------------------------------------------
# Google OAuth / YouTube
# -----------------------------------------------------------------------------

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "http://localhost:3000/auth/callback")

# Windows that opened the consent popup; the callback page posts its result to each
OAUTH_MESSAGE_ORIGINS = _split_csv(
    os.getenv("OAUTH_MESSAGE_ORIGINS", "http://localhost:5173,http://localhost:3000")
)

DEFAULT_PRIVACY = os.getenv("DEFAULT_PRIVACY", "private")
YOUTUBE_CATEGORY_ID = os.getenv("YOUTUBE_CATEGORY_ID", "22")  # People & Blogs
CLEANUP_AFTER_UPLOAD = _as_bool(os.getenv("CLEANUP_AFTER_UPLOAD", "false"))

# -----------------------------------------------------------------------------
# Transactional email (Brevo)
# -----------------------------------------------------------------------------

BREVO_API_KEY = os.getenv("BREVO_API_KEY", "")
BREVO_SENDER_EMAIL = os.getenv("BREVO_SENDER_EMAIL", "")
BREVO_SENDER_NAME = os.getenv("BREVO_SENDER_NAME", "Video Publishing Pipeline")
BREVO_API_URL = os.getenv("BREVO_API_URL", "https://api.brevo.com/v3/smtp/email")

# -----------------------------------------------------------------------------
# Folder watcher
# -----------------------------------------------------------------------------

WATCH_FOLDER = Path(os.getenv("WATCH_FOLDER", "./uploads")).resolve()
WATCHER_ENABLED = _as_bool(os.getenv("WATCHER_ENABLED", "true"))
WATCH_POLL_INTERVAL = float(os.getenv("WATCH_POLL_INTERVAL", "1.0"))  # seconds
WATCH_STABILITY_THRESHOLD = float(os.getenv("WATCH_STABILITY_THRESHOLD", "0.5"))  # seconds

# Security / domains
ALLOWED_HOSTS = _split_csv(
    os.getenv(
        "ALLOWED_HOSTS",
        "*",
    )
)

CORS_ORIGINS = _split_csv(
    os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://localhost:3000",
    )
)

# Environment
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"
DEBUG = not IS_PRODUCTION
