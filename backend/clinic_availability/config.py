from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Tuple

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
DEFAULT_DB_URL = f"sqlite:///{BASE_DIR / 'app.db'}"


def _parse_origins(raw: str) -> Tuple[str, ...]:
    parts = [p.strip() for p in raw.split(",")]
    return tuple(p for p in parts if p)


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DB_URL

    default_interval_minutes: int = 30
    # Upper bound for a single external calendar fetch, in seconds.
    gateway_timeout_seconds: float = 5.0
    google_calendar_base_url: str = "https://www.googleapis.com/calendar/v3"
    # Clinic wall-clock offset used when asking the external calendar for a day.
    clinic_utc_offset: str = "+07:00"

    # Bookable day shown for providers with no schedule configured.
    default_day_start: str = "09:00"
    default_day_end: str = "20:00"

    log_level: str = "INFO"
    cors_origins: Tuple[str, ...] = ("http://localhost:3000", "http://127.0.0.1:3000")
    seed_demo_data: bool = True


def load_settings() -> Settings:
    load_dotenv()
    defaults = Settings()
    env = os.environ

    interval = int(env.get("CLINIC_DEFAULT_INTERVAL_MINUTES", defaults.default_interval_minutes))
    if interval <= 0:
        raise RuntimeError(f"Invalid CLINIC_DEFAULT_INTERVAL_MINUTES: {interval}. Expected a positive integer.")

    timeout = float(env.get("CLINIC_GATEWAY_TIMEOUT_SECONDS", defaults.gateway_timeout_seconds))
    if timeout <= 0:
        raise RuntimeError(f"Invalid CLINIC_GATEWAY_TIMEOUT_SECONDS: {timeout}. Expected a positive number.")

    return Settings(
        database_url=env.get("CLINIC_DATABASE_URL", defaults.database_url),
        default_interval_minutes=interval,
        gateway_timeout_seconds=timeout,
        google_calendar_base_url=env.get("CLINIC_GOOGLE_CALENDAR_BASE_URL", defaults.google_calendar_base_url).rstrip("/"),
        clinic_utc_offset=env.get("CLINIC_UTC_OFFSET", defaults.clinic_utc_offset),
        default_day_start=env.get("CLINIC_DEFAULT_DAY_START", defaults.default_day_start),
        default_day_end=env.get("CLINIC_DEFAULT_DAY_END", defaults.default_day_end),
        log_level=env.get("CLINIC_LOG_LEVEL", defaults.log_level).upper(),
        cors_origins=_parse_origins(env["CLINIC_CORS_ORIGINS"]) if "CLINIC_CORS_ORIGINS" in env else defaults.cors_origins,
        seed_demo_data=_parse_bool(env["CLINIC_SEED_DEMO_DATA"]) if "CLINIC_SEED_DEMO_DATA" in env else defaults.seed_demo_data,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
