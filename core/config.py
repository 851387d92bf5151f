"""Application configuration with environment-specific profiles.

Supports dev, staging, production and test environments via APP_ENV.
All values can be overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache


@dataclass(frozen=True)
class Settings:
    """Immutable application settings resolved from environment."""

    database_url: str
    app_env: str = "dev"
    log_level: str = "INFO"
    jwt_secret_key: str = "jwt-change-me"
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:5173"])
    request_id_header_name: str = "X-Request-ID"

    # Rate limiting (slowapi)
    rate_limit_enabled: bool = False
    rate_limit_storage_uri: str = "memory://"
    simulator_rate_limit: str = "30/minute"
    apply_rate_limit: str = "60/minute"

    # Engine defaults
    default_plan_rigidity: str = "LOCKED_1_DAY"
    simulation_min_weeks: int = 2
    simulation_max_weeks: int = 12
    pending_proposals_limit: int = 5

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"


# -- Environment profiles --

_ENV_PROFILES: dict[str, dict] = {
    "dev": {
        "log_level": "DEBUG",
        "rate_limit_enabled": False,
    },
    "staging": {
        "log_level": "INFO",
        "rate_limit_enabled": True,
    },
    "production": {
        "log_level": "WARNING",
        "rate_limit_enabled": True,
    },
    "test": {
        "log_level": "WARNING",
        "rate_limit_enabled": False,
    },
}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def get_database_url() -> str:
    """Resolve database URL from env var or a local default."""
    env_url = os.getenv("DATABASE_URL")
    if env_url:
        return env_url
    return "sqlite+pysqlite:///./trainload.db"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build Settings by merging environment profile with env-var overrides."""
    app_env = os.getenv("APP_ENV", "dev")
    profile = _ENV_PROFILES.get(app_env, _ENV_PROFILES["dev"])
    origins = os.getenv("CORS_ORIGINS", "http://localhost:5173")

    return Settings(
        database_url=get_database_url(),
        app_env=app_env,
        log_level=os.getenv("LOG_LEVEL", profile.get("log_level", "INFO")),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", "jwt-change-me"),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        request_id_header_name=os.getenv("REQUEST_ID_HEADER", "X-Request-ID"),
        rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", bool(profile.get("rate_limit_enabled", False))),
        rate_limit_storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
        simulator_rate_limit=os.getenv("SIMULATOR_RATE_LIMIT", "30/minute"),
        apply_rate_limit=os.getenv("APPLY_RATE_LIMIT", "60/minute"),
        default_plan_rigidity=os.getenv("DEFAULT_PLAN_RIGIDITY", "LOCKED_1_DAY"),
        simulation_min_weeks=int(os.getenv("SIMULATION_MIN_WEEKS", "2")),
        simulation_max_weeks=int(os.getenv("SIMULATION_MAX_WEEKS", "12")),
        pending_proposals_limit=int(os.getenv("PENDING_PROPOSALS_LIMIT", "5")),
    )
