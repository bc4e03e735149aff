import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database & Cache
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None
    REDIS_URL: Optional[str] = None

    # Rate-limit counter backend for trial activation: "memory" | "redis"
    RATE_LIMIT_BACKEND: str = "memory"

    # Bearer token verification
    AUTH_SECRET_KEY: Optional[str] = None
    AUTH_ALGORITHM: str = "HS256"
    ALLOW_HEADER_AUTH: bool = True  # X-User-Id fallback (dev/tests)

    # Trial activation
    TRIAL_DAYS: int = 30
    TRIAL_PLAN: str = "PRO"
    TRIAL_MAX_ATTEMPTS: int = 3
    TRIAL_ATTEMPT_WINDOW_SECONDS: int = 24 * 60 * 60

    # Upgrade prompts
    UPGRADE_URL: str = "/billing/upgrade"

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("orgaccess")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = ["DATABASE_URL", "AUTH_SECRET_KEY"]
    if str(getattr(cfg, "RATE_LIMIT_BACKEND", "memory")).lower() == "redis":
        required_keys.append("REDIS_URL")

    missing = [key for key in required_keys if not getattr(cfg, key, None)]
    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    if cfg.TRIAL_MAX_ATTEMPTS < 1 or cfg.TRIAL_ATTEMPT_WINDOW_SECONDS < 1 or cfg.TRIAL_DAYS < 1:
        message = "Trial settings must be positive integers"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
