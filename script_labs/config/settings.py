import logging
import re
import sys
from typing import List, Optional

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ("database_url", "jwt_secret", "supabase_url", "supabase_anon_key")

DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173"

_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}
_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)


def parse_duration(value: str) -> int:
    """Parse "24h", "30m", "7d", "45s" or bare seconds into seconds."""
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[(unit or "s").lower()]


class Settings(BaseSettings):
    # App
    app_name: str = "script-labs-api"
    app_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False
    environment: str = "development"  # development | production | test
    log_level: str = "INFO"

    # Database
    database_url: str = Field(min_length=1)
    db_pool_min_size: int = 1
    db_pool_max_size: int = 10

    # JWT
    jwt_secret: str = Field(min_length=1)
    jwt_expires_in: str = "24h"
    jwt_algorithm: str = "HS256"

    # Supabase
    supabase_url: str = Field(min_length=1)
    supabase_anon_key: str = Field(min_length=1)

    # CORS
    cors_origins: str = DEFAULT_CORS_ORIGINS
    frontend_url: Optional[str] = None

    # Rate limiting (None means "pick the default for the environment")
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    rate_limit_window_seconds: Optional[int] = None
    rate_limit_max_requests: Optional[int] = None
    rate_limit_max_auth_requests: Optional[int] = None
    rate_limit_strict_window_seconds: int = 3600
    rate_limit_strict_max_requests: Optional[int] = None
    rate_limit_relaxed_max_requests: Optional[int] = None
    rate_limit_bypass_loopback: bool = False
    rate_limit_bypass_addresses: str = "::1,::ffff:127.0.0.1"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",
        extra="ignore"
    )

    @model_validator(mode="after")
    def apply_environment_defaults(self) -> "Settings":
        dev = self.is_development
        if self.rate_limit_window_seconds is None:
            self.rate_limit_window_seconds = 60 if dev else 15 * 60
        if self.rate_limit_max_requests is None:
            self.rate_limit_max_requests = 200 if dev else 100
        if self.rate_limit_max_auth_requests is None:
            self.rate_limit_max_auth_requests = 50 if dev else 5
        if self.rate_limit_strict_max_requests is None:
            self.rate_limit_strict_max_requests = 20 if dev else 3
        if self.rate_limit_relaxed_max_requests is None:
            self.rate_limit_relaxed_max_requests = 500 if dev else 100
        parse_duration(self.jwt_expires_in)
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def jwt_expires_seconds(self) -> int:
        return parse_duration(self.jwt_expires_in)

    def get_cors_origins_list(self) -> List[str]:
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if self.frontend_url and self.frontend_url not in origins:
            origins.append(self.frontend_url)
        return origins

    def get_rate_limit_bypass_addresses(self) -> List[str]:
        return [a.strip() for a in self.rate_limit_bypass_addresses.split(",") if a.strip()]


def load_settings() -> Settings:
    """Build settings from the environment, exiting when required variables are missing."""
    try:
        return Settings()
    except ValidationError as exc:
        missing = sorted({
            str(err["loc"][0]).upper()
            for err in exc.errors()
            if err["loc"] and err["loc"][0] in REQUIRED_ENV_VARS
        })
        if not missing:
            raise
        logger.critical("Missing required environment variables:")
        for name in missing:
            logger.critical("   - %s", name)
        logger.critical("Please check your .env file and ensure all required variables are set.")
        sys.exit(1)


settings = load_settings()
