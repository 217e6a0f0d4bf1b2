from typing import Any, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """SDK client settings.

    Values can be passed to the constructor or loaded from environment
    variables prefixed with ``SIMPLEFACT_`` (or a .env file).
    """

    # API endpoint
    base_url: str

    # Static bearer token; "api_key" is accepted as a constructor alias
    api_token: Optional[str] = None

    # Credentials used to obtain a fresh token
    email: Optional[str] = None
    password: Optional[str] = None

    # Transport
    timeout: float = 30.0  # Per-request timeout in seconds
    headers: dict[str, str] = {}

    # Rate limiting
    rate_limit_per_hour: int = 1000

    # Retry policy
    retry_attempts: int = 3
    retry_delay: float = 1.0  # Base delay in seconds, multiplied by attempt

    # Token handling
    auto_refresh_token: bool = True

    # Logging
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @model_validator(mode="before")
    @classmethod
    def accept_api_key(cls, data: Any) -> Any:
        """Map the ``api_key`` spelling onto api_token.

        An explicit api_key replaces api_token from any other source.
        """
        if isinstance(data, dict) and "api_key" in data:
            data = dict(data)
            api_key = data.pop("api_key")
            if api_key is not None:
                data["api_token"] = api_key
        return data

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL and reject empty values."""
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("base_url must not be empty")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("rate_limit_per_hour", "retry_attempts")
    @classmethod
    def validate_at_least_one(cls, v: int) -> int:
        """Validate limits and attempt counts are at least 1."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("retry_delay")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("retry_delay must not be negative")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(
        env_prefix="SIMPLEFACT_",
        env_file=".env",
        extra="ignore",
    )
