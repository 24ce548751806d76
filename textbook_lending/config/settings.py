"""Service settings. Loads .env from the project root before reading the environment."""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_ENV_PATH = _PROJECT_ROOT / ".env"
if _ENV_PATH.exists():
    load_dotenv(_ENV_PATH, override=False)


def _get_int(key: str, default: int) -> int:
    raw = (os.getenv(key, "") or "").strip()
    if not raw:
        return default
    try:
        v = int(raw)
        return default if v <= 0 else v
    except ValueError:
        logger.warning("Invalid %s=%r; using %d", key, raw, default)
        return default


def _get_flag(key: str, default: str = "1") -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


def _get_log_level(key: str, default: str) -> str:
    raw = (os.getenv(key, "") or "").strip().upper()
    if not raw:
        return default
    # getLevelName maps known names to their number and anything else to a string.
    if not isinstance(logging.getLevelName(raw), int):
        logger.warning("Invalid %s=%r; using %s", key, raw, default)
        return default
    return raw


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./textbooks.db")
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", "./storage"))
FILES_BASE_URL = os.getenv("FILES_BASE_URL", "/files").rstrip("/")
SWEEP_ENABLED = _get_flag("SWEEP_ENABLED")
SWEEP_INTERVAL_SECONDS = _get_int("SWEEP_INTERVAL_SECONDS", 3600)
LOG_LEVEL = _get_log_level("LOG_LEVEL", "INFO")
HOST = os.getenv("HOST", "127.0.0.1")
PORT = _get_int("PORT", 8000)
