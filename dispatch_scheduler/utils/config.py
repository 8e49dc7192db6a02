"""Environment-backed runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


DEFAULT_TIME_SLOTS: tuple[str, ...] = (
    "08:00",
    "08:30",
    "09:00",
    "10:00",
    "11:00",
    "12:00",
    "13:00",
    "14:00",
    "15:00",
    "16:00",
    "17:00",
    "18:00",
)


def _env_tuple(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    scheduling_domains: tuple[str, ...]
    default_time_slots: tuple[str, ...]
    shared_capacity_hours: tuple[str, ...]
    seed_reference_data: bool
    requesting_area_fields: tuple[str, ...]


@lru_cache
def get_settings() -> Settings:
    """Build settings once per process from DISPATCH_* environment variables."""
    return Settings(
        app_name=os.getenv("DISPATCH_APP_NAME", "Dispatch Capacity Scheduler"),
        app_version=os.getenv("DISPATCH_APP_VERSION", "1.0.0"),
        log_level=os.getenv("DISPATCH_LOG_LEVEL", "INFO"),
        database_path=Path(
            os.getenv("DISPATCH_DATABASE_PATH", "data/dispatch_scheduler.db")
        ),
        scheduling_domains=_env_tuple("DISPATCH_SCHEDULING_DOMAINS", ("crm", "gam")),
        default_time_slots=_env_tuple("DISPATCH_DEFAULT_TIME_SLOTS", DEFAULT_TIME_SLOTS),
        shared_capacity_hours=_env_tuple(
            "DISPATCH_SHARED_CAPACITY_HOURS",
            ("08:00", "08:30"),
        ),
        seed_reference_data=_env_bool("DISPATCH_SEED_REFERENCE_DATA", True),
        requesting_area_fields=_env_tuple(
            "DISPATCH_REQUESTING_AREA_FIELDS",
            ("requesting_area", "gam_requesting_area", "area_solicitante"),
        ),
    )
