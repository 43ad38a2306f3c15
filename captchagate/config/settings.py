"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings

from captchagate.exceptions import ConfigError
from captchagate.types import IdentifierEncoding


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Challenges
    challenge_ttl_seconds: float = 3600.0
    id_encoding: IdentifierEncoding = IdentifierEncoding.DECIMAL
    require_display: bool = True  # Submit only after the image was fetched
    sweep_interval_seconds: float = 60.0  # 0 disables the background sweep
    issue_limit_per_minute: int = 30  # Per client IP; 0 disables
    max_identity_length: int = 64

    # App
    host: str = "localhost"
    port: int = 10069
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: list[str] = ["http://localhost:10069"]


def validate_settings(settings: Settings) -> Settings:
    """Reject combinations the engine cannot run with."""
    if settings.challenge_ttl_seconds <= 0:
        msg = "CHALLENGE_TTL_SECONDS must be positive"
        raise ConfigError(msg)
    if settings.sweep_interval_seconds < 0:
        msg = "SWEEP_INTERVAL_SECONDS must not be negative"
        raise ConfigError(msg)
    if settings.max_identity_length < 1:
        msg = "MAX_IDENTITY_LENGTH must be at least 1"
        raise ConfigError(msg)
    return settings


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return validate_settings(Settings())
