"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


_PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(_PROJECT_ROOT / ".env")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings shared by every layer."""

    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    seed_demo_data: bool

    # Governance rostering
    governance_sector: str
    default_shift_start: str
    convocation_notice_hours: int
    default_convocation_justification: str

    # Recurring task registry
    projection_horizon_days: int

    # External activity suggestions
    suggestion_api_url: str
    suggestion_api_key: str
    suggestion_model: str
    suggestion_timeout_seconds: float


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests call ``get_settings.cache_clear()``."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Facility Operations Planner"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        database_path=Path(
            os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "facility_planner.db"))
        ),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
        governance_sector=os.getenv("GOVERNANCE_SECTOR", "Housekeeping"),
        default_shift_start=os.getenv("DEFAULT_SHIFT_START", "08:00"),
        convocation_notice_hours=_env_int("CONVOCATION_NOTICE_HOURS", 72),
        default_convocation_justification=os.getenv(
            "DEFAULT_CONVOCATION_JUSTIFICATION",
            "Staffing required to meet the forecast housekeeping demand for this week.",
        ),
        projection_horizon_days=_env_int("PROJECTION_HORIZON_DAYS", 30),
        suggestion_api_url=os.getenv(
            "SUGGESTION_API_URL",
            "https://generativelanguage.googleapis.com/v1beta/models",
        ),
        suggestion_api_key=os.getenv("SUGGESTION_API_KEY", ""),
        suggestion_model=os.getenv("SUGGESTION_MODEL", "gemini-2.5-flash"),
        suggestion_timeout_seconds=_env_float("SUGGESTION_TIMEOUT_SECONDS", 15.0),
    )
