"""
Bhavin API — Application Configuration
=======================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Passed to create_app() and the stage constructors.
When:  Loaded once at module import time; invalid values fail at startup.
"""

import re
from typing import List, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

# Helmet's default Content-Security-Policy directives
DEFAULT_CONTENT_SECURITY_POLICY = (
    "default-src 'self';"
    "base-uri 'self';"
    "font-src 'self' https: data:;"
    "form-action 'self';"
    "frame-ancestors 'self';"
    "img-src 'self' data:;"
    "object-src 'none';"
    "script-src 'self';"
    "script-src-attr 'none';"
    "style-src 'self' https: 'unsafe-inline';"
    "upgrade-insecure-requests"
)

ACCESS_LOG_FORMATS = {"combined", "common", "short", "tiny", "dev"}

_SIZE_UNITS = {"b": 1, "kb": 1024, "mb": 1024 ** 2, "gb": 1024 ** 3}
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)


def parse_byte_size(value: Union[int, str]) -> int:
    """
    Convert a human readable size ("100kb", "1mb", "512") to bytes.

    Bare numbers are bytes. Raises ValueError for anything else.
    """
    if isinstance(value, int):
        return value
    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid byte size '{value}'. Use e.g. 512, 100kb, 1mb")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[(unit or "b").lower()])


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have development defaults. Attributes are grouped by the
    pipeline stage that consumes them.
    """

    # ── Server ────────────────────────────────────────────────────────────
    app_env: str = Field(default="development")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1, le=65535)

    # ── Logging ───────────────────────────────────────────────────────────
    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    # Directory for combined.log / error.log; empty disables file logging
    log_dir: str = Field(default="")

    access_log_format: str = Field(default="combined")

    # ── CORS ──────────────────────────────────────────────────────────────
    # Comma-separated origins; "*" allows any origin
    cors_origins: str = Field(default="*")
    cors_methods: str = Field(default="GET,HEAD,PUT,PATCH,POST,DELETE")
    cors_allow_credentials: bool = Field(default=False)

    # ── Body Parsing ──────────────────────────────────────────────────────
    body_limit: int = Field(default=102_400, ge=1)
    body_parameter_limit: int = Field(default=1000, ge=1)

    # ── Cookies ───────────────────────────────────────────────────────────
    # Secret used to verify "s:"-prefixed signed cookies; empty disables
    cookie_secret: str = Field(default="")
    max_cookie_header_size: int = Field(default=8192, ge=256)

    # ── Security Headers ──────────────────────────────────────────────────
    hsts_max_age: int = Field(default=31_536_000, ge=0)
    content_security_policy: str = Field(default=DEFAULT_CONTENT_SECURITY_POLICY)

    # ── Security Policies ─────────────────────────────────────────────────
    # Comma-separated, case-insensitive User-Agent substrings to reject
    blocked_user_agents: str = Field(default="")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("access_log_format")
    @classmethod
    def validate_access_log_format(cls, v: str) -> str:
        lower = v.lower()
        if lower not in ACCESS_LOG_FORMATS:
            raise ValueError(
                f"Invalid access_log_format '{v}'. Must be one of: {sorted(ACCESS_LOG_FORMATS)}"
            )
        return lower

    @field_validator("app_env")
    @classmethod
    def normalize_app_env(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("body_limit", mode="before")
    @classmethod
    def validate_body_limit(cls, v: Union[int, str]) -> int:
        """Accepts "100kb"-style sizes as well as plain byte counts."""
        return parse_byte_size(v)

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def cors_origins_list(self) -> List[str]:
        return _split_csv(self.cors_origins)

    @property
    def cors_methods_list(self) -> List[str]:
        return [method.upper() for method in _split_csv(self.cors_methods)]

    @property
    def blocked_user_agents_list(self) -> List[str]:
        return [agent.lower() for agent in _split_csv(self.blocked_user_agents)]


# Singleton instance: the default for create_app() and the server entry point
settings = Settings()
