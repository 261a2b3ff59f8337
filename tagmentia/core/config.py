"""
Service configuration.

Values come from the environment and an optional .env file. Missing
credentials are reported by validate_config() at startup rather than at
import time, so tests and tooling can import the package without them.
"""
import logging
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    ENV: str = "development"  # "production" switches logs to JSON
    CONFIG_STRICT: bool = False

    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    SUPABASE_JWT_SECRET: Optional[str] = None
    SUPABASE_JWT_AUDIENCE: str = "authenticated"

    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    BILLING_PROVIDER_TIMEOUT_SECONDS: float = Field(10.0, gt=0)

    LIMITS_CACHE_TTL_SECONDS: int = 300

    ADMIN_KEY: Optional[str] = None
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    HOST: str = "0.0.0.0"
    PORT: int = 8000


settings = Settings()

# Keys the service cannot do its job without
REQUIRED_KEYS = ("DATABASE_URL", "SUPABASE_JWT_SECRET", "STRIPE_SECRET_KEY")


def config_problems(cfg) -> List[str]:
    """Human-readable configuration problems; never includes secret values."""
    problems = []
    missing = [key for key in REQUIRED_KEYS if not getattr(cfg, key, None)]
    if missing:
        problems.append(f"Missing required configuration: {', '.join(missing)}")
    if getattr(cfg, "LIMITS_CACHE_TTL_SECONDS", 0) <= 0:
        problems.append("LIMITS_CACHE_TTL_SECONDS must be positive")
    return problems


def validate_config(
    strict: Optional[bool] = None,
    settings_obj: Optional[Settings] = None,
    logger: Optional[logging.Logger] = None,
) -> bool:
    """
    Report configuration problems.

    Strict mode (argument, else CONFIG_STRICT) raises RuntimeError on the
    first problem; otherwise each one is logged as a warning.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("tagmentia")
    if strict is None:
        strict = bool(getattr(cfg, "CONFIG_STRICT", False))

    for problem in config_problems(cfg):
        if strict:
            raise RuntimeError(problem)
        log.warning(problem)
    return True
