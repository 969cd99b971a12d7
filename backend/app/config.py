"""
backend/app/config.py

Purpose:
    Environment-driven settings for the pick engine: MongoDB, JWT
    verification, the round lock gate and the background resolver.
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# backend/.env wins over the project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str  # must point at a replica set (transactions)
    MONGO_DB: str = "lastpick"
    JWT_SECRET: str
    JWT_SECRET_OLD: str = ""  # previous secret, accepted until rotation ends
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    # Round lock gate: rounds lock this many seconds before lock_time.
    # Only ever stricter than the configured lock time.
    LOCK_CLOCK_SKEW_SECONDS: int = 0

    # Result resolution
    RESOLVE_BATCH_SIZE: int = 50

    # Background round resolver
    ROUND_RESOLVER_ENABLED: bool = True
    ROUND_RESOLVER_INTERVAL_MINUTES: int = 15
    ROUND_RESOLVER_IDLE_HOURS: int = 6

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
