from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

def _resolve_project_root() -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).resolve().parent
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = _resolve_project_root()


def load_env() -> None:
    env_name = os.getenv("APP_ENV", "development")
    candidates = [Path.cwd(), PROJECT_ROOT]
    for base in candidates:
        env_path = base / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            break

    for base in candidates:
        env_specific = base / f".env.{env_name}"
        if env_specific.exists():
            load_dotenv(env_specific, override=True)
            break


WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def _int_setting(name: str, default: int | None, minimum: int = 0) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}, got {value}")
    return value


def _week_start_setting() -> str:
    value = os.getenv("CALENDAR_WEEK_START", "").strip().lower() or "sunday"
    if value not in WEEKDAY_NAMES:
        raise RuntimeError(f"CALENDAR_WEEK_START must be a weekday name, got {value!r}")
    return value


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str = "INFO"
    log_dir: str = "logs"
    calendar_week_start: str = "sunday"
    materialize_lookahead_days: int | None = None
    max_occurrences: int = 1000
    horizon_days: int = 90


load_env()

DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Create a .env file with your connection string.")

SETTINGS = Settings(
    database_url=DATABASE_URL,
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_dir=os.getenv("LOG_DIR", "logs"),
    calendar_week_start=_week_start_setting(),
    materialize_lookahead_days=_int_setting("MATERIALIZE_LOOKAHEAD_DAYS", None),
    max_occurrences=_int_setting("MAX_OCCURRENCES", 1000, minimum=1),
    horizon_days=_int_setting("HORIZON_DAYS", 90, minimum=1),
)
