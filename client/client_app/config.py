"""
API client configuration.

Values come from ``VITE_API_*`` environment variables (or a ``.env`` file),
so the same names configure the browser build and this client.

Usage:
    from client_app.config import get_api_config
"""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic_settings import BaseSettings

LOG_LEVELS = ("debug", "info", "warn", "error")


class ApiConfig(BaseSettings):
    """Client settings; ``validate_config()`` lists problems instead of raising."""

    # ==========================================================================
    # Transport
    # ==========================================================================
    API_BASE_URL: str = "http://localhost:3000"
    API_DEFAULT_TIMEOUT: int = 30000  # ms
    API_MAX_RETRIES: int = 3
    API_ENABLE_RETRY: bool = True
    API_RETRY_BACKOFF: float = 1.0  # seconds, doubled per attempt
    API_ENABLE_TOKEN_REFRESH: bool = True

    # ==========================================================================
    # Logging
    # ==========================================================================
    API_LOGGING_ENABLED: bool = True
    API_LOG_LEVEL: str = "info"
    API_LOG_REQUEST_BODY: bool = False
    API_LOG_RESPONSE_BODY: bool = False
    API_LOG_MAX_ENTRIES: int = 1000

    # ==========================================================================
    # Application
    # ==========================================================================
    APP_VERSION: str = "1.0.0"
    APP_NAME: str = "Workspace Platform"
    ENABLE_DEVTOOLS: bool = False

    class Config:
        env_prefix = "VITE_"
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def base_url(self) -> str:
        return self.API_BASE_URL.rstrip("/")

    @property
    def timeout_seconds(self) -> float:
        return self.API_DEFAULT_TIMEOUT / 1000

    @property
    def max_retries(self) -> int:
        return self.API_MAX_RETRIES if self.API_ENABLE_RETRY else 0

    def validate_config(self) -> list[str]:
        """Return a list of configuration errors (empty if all OK)."""
        errors = []

        if not self.API_BASE_URL:
            errors.append("API base URL is required")
        else:
            parsed = urlparse(self.API_BASE_URL)
            if parsed.scheme not in ("http", "https") or not parsed.netloc:
                errors.append("API base URL is not a valid URL")

        if self.API_DEFAULT_TIMEOUT < 1000:
            errors.append("Default timeout must be at least 1000ms")

        if not 0 <= self.API_MAX_RETRIES <= 10:
            errors.append("Max retries must be between 0 and 10")

        if not 10 <= self.API_LOG_MAX_ENTRIES <= 10000:
            errors.append("Log max entries must be between 10 and 10000")

        if self.API_LOG_LEVEL not in LOG_LEVELS:
            errors.append(f"Log level must be one of: {', '.join(LOG_LEVELS)}")

        return errors


@lru_cache
def get_api_config() -> ApiConfig:
    """Process-wide configuration loaded from the environment.

    Raises ValueError listing every problem when the environment is invalid.
    """
    config = ApiConfig()
    errors = config.validate_config()
    if errors:
        raise ValueError("Invalid API configuration: " + "; ".join(errors))
    return config
