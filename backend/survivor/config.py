"""
backend/survivor/config.py

Purpose:
    Central settings loading for the survivor backend.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from datetime import date
from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "survivor"
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    # Admin endpoints are disabled while this is empty
    ADMIN_API_KEY: str = ""

    # Pool / season
    POOL_ID: str = "nerduniverse-2025"
    SEASON_YEAR: int = 2025
    SEASON_START_DATE: date = date(2025, 9, 4)
    TOTAL_WEEKS: int = 18

    # ESPN scoreboard (public, no key)
    ESPN_BASE_URL: str = "https://site.api.espn.com/apis/site/v2/sports"
    ESPN_RATE_LIMIT_RPM: int = 60
    ESPN_TIMEOUT_SECONDS: float = 15.0
    ESPN_MAX_RETRIES: int = 3
    ESPN_RETRY_BASE_DELAY: float = 2.0

    # Results cache / refresh loop
    RESULTS_CACHE_MAX_AGE_SECONDS: int = 21600  # 6 hours
    RESULTS_SYNC_INTERVAL_MINUTES: int = 30
    RESULTS_SYNC_MAX_ITERATIONS: int = 3
    RESULTS_SYNC_MAX_SECONDS: int = 120

    # Survivor rules
    SURVIVOR_TIE_POLICY: str = "eliminate"  # eliminate | push

    # Integrity audit
    AUDIT_CONCURRENCY: int = 8
    AUDIT_AUTO_CORRECT: bool = False
    AUDIT_INTERVAL_MINUTES: int = 360

    # Scheduler jobs are only registered when enabled
    AUTOMATION_ENABLED: bool = False

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
