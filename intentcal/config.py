from __future__ import annotations

import os
import pathlib
from datetime import timedelta

LLM_DEBUG = os.getenv("LLM_DEBUG", "0") == "1"

# Empty means "use the device's local zone".
DEFAULT_TIMEZONE = os.getenv("INTENTCAL_TIMEZONE", "").strip()

# -------------------------
# Language model
# -------------------------
LLM_MODE = os.getenv("LLM_MODE", "default").strip().lower()
DEFAULT_LLM_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"
DEFAULT_LLM_MODEL = "qwen-long-latest"
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "").strip()
LLM_API_KEY = (os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or "").strip()
LLM_MODEL = os.getenv("LLM_MODEL", "").strip()
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

PARSE_TEMPERATURE = 0.2
JOURNAL_SUMMARY_TEMPERATURE = 0.7
SCHEDULE_SUMMARY_TEMPERATURE = 0.5

MAX_IMAGE_DATA_URL_CHARS = 4_500_000  # about 3.4MB of base64
IMAGE_JPEG_QUALITY = 80
IMAGE_TOO_LARGE_MESSAGE = "The attached image is too large. Please shrink it to about 3MB."
EMPTY_IMAGE_PROMPT = "Parse the schedule from this image."

# -------------------------
# Intent defaults / resolution
# -------------------------
FALLBACK_TITLE_CHARS = 20
FALLBACK_TITLE = "New Event"
DEFAULT_EVENT_DURATION = timedelta(hours=1)
DELETE_SEARCH_WINDOW = timedelta(hours=2)
MODIFY_SEARCH_WINDOW = timedelta(hours=24)

# -------------------------
# Calendar store
# -------------------------
STORE_BACKEND = os.getenv("STORE_BACKEND", "local").strip().lower()

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
GOOGLE_TOKEN_FILE = pathlib.Path(
    os.getenv("GOOGLE_TOKEN_FILE", str(BASE_DIR / "google_token.json")))
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GOOGLE_TASKLIST_ID = os.getenv("GOOGLE_TASKLIST_ID", "@default")
GCAL_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/tasks",
]

# -------------------------
# HTTP
# -------------------------
API_BASE = os.getenv("API_BASE", "/api")
CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "")
cors_origins: list[str] = [
    origin.strip() for origin in CORS_ALLOW_ORIGINS.split(",") if origin.strip()
]
