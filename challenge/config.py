"""Runtime configuration read from the environment with local defaults."""

from __future__ import annotations

import os
from pathlib import Path


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


# ── Plan bounds ───────────────────────────────────────────────────────────────
DAYS_PER_MONTH = 30           # fixed month length, not calendar-accurate
SETUP_MAX_MONTHS = 24         # preset picker in the setup step
CUSTOM_MAX_MONTHS = 60        # custom duration mode
MAX_CADENCE_DAYS = 90
MAX_VIDEOS_PER_CADENCE = 10

DEFAULT_DURATION_MONTHS = 6
DEFAULT_CADENCE_DAYS = 2
DEFAULT_VIDEOS_PER_CADENCE = 1

PREVIEW_LIMIT = 10

# ── Collaborators ─────────────────────────────────────────────────────────────
API_URL = os.getenv("CHALLENGE_API_URL", "http://127.0.0.1:5000")
API_TIMEOUT = _float_env("CHALLENGE_API_TIMEOUT", 10.0)
CHALLENGE_ID = os.getenv("CHALLENGE_ID", "creator-challenge")

CACHE_PATH = Path(
    os.getenv("CHALLENGE_CACHE_PATH", str(Path.home() / ".upload-challenge" / "challenge.json"))
)

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("CHALLENGE_LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.getenv("CHALLENGE_LOG_DIR", str(Path.home() / ".upload-challenge" / "logs")))
LOG_MAX_BYTES = _int_env("CHALLENGE_LOG_MAX_BYTES", 1_048_576)
LOG_BACKUP_COUNT = _int_env("CHALLENGE_LOG_BACKUPS", 5)
