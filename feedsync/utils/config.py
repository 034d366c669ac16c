"""Configuration management for FeedSync."""

import os
from pathlib import Path

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Backend configuration
API_BASE_URL = os.environ.get("FEEDSYNC_API_BASE_URL", "http://localhost:3000")
FEED_PAGE_SIZE = int(os.environ.get("FEEDSYNC_FEED_PAGE_SIZE", "20"))

# Sessions configuration
SESSION_DIR = Path(os.environ.get("FEEDSYNC_SESSION_DIR", PROJECT_ROOT / ".sessions"))
SESSION_FILE_NAME = "session.enc"
SESSION_KEY_FILE_NAME = ".key"

# Logs configuration
LOG_DIR = Path(os.environ.get("FEEDSYNC_LOG_DIR", PROJECT_ROOT / "logs"))
LOG_FILE = LOG_DIR / "feedsync.log"
LOG_LEVEL = os.environ.get("FEEDSYNC_LOG_LEVEL", "INFO").upper()

# Retry configuration (idempotent reads only)
MAX_RETRIES = int(os.environ.get("FEEDSYNC_MAX_RETRIES", "3"))
RETRY_INITIAL_WAIT = 0.5  # Seconds
RETRY_MAX_WAIT = 8.0  # Seconds
RETRY_MULTIPLIER = 0.5  # Exponential backoff: 0.5s, 1s, 2s, ...

# HTTP configuration
CONNECT_TIMEOUT = 10.0  # Seconds
READ_TIMEOUT = 60.0  # Seconds
UPLOAD_TIMEOUT = 300.0  # Seconds

# Composer defaults
DEFAULT_VISIBILITY = "public"
DEFAULT_STORAGE_PURPOSE = "post"

# App information
APP_NAME = "FeedSync"
APP_VERSION = "0.1.0"
