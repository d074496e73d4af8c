"""
Configuration module for the path-based reverse proxy.

This module uses Pydantic Settings to load and validate environment variables
for the default backend, the exact-path route table, upstream timeouts and
server settings.

Environment variables are loaded from .env file or system environment.
"""

from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .proxy.errors import ProxyConfigurationError


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    PROXY_ROUTES is read as a JSON object, for example:
        PROXY_ROUTES='{"/foo": "http://foo-backend:9000", "/bar": "//bar-backend"}'
    """

    # =========================================================================
    # Routing Configuration
    # =========================================================================

    PROXY_DEFAULT_HOST: str = Field(
        ...,
        description="Default backend base URL (e.g., http://backend:8000)",
        min_length=1,
    )

    PROXY_ROUTES: Dict[str, str] = Field(
        default_factory=dict,
        description="Exact request path -> backend URL",
    )

    # =========================================================================
    # Upstream Configuration
    # =========================================================================

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Read/write/pool timeout for backend requests",
        gt=0,
    )

    UPSTREAM_CONNECT_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Connect timeout for backend requests",
        gt=0,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    PROXY_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the proxy server",
    )

    PROXY_PORT: int = Field(
        default=8080,
        description="Port to bind the proxy server",
        ge=1,
        le=65535,
    )

    HEALTH_CHECK_PATH: Optional[str] = Field(
        default="/__proxy/health",
        description="Path served by the proxy itself (empty disables it)",
    )

    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("PROXY_ROUTES")
    @classmethod
    def validate_routes(cls, v: Dict[str, str]) -> Dict[str, str]:
        """
        Reject empty route paths at load time.

        Endpoint URLs are validated by the route table when the router is
        built, so the error messages stay the same as for programmatic
        registration.
        """
        for path in v:
            if not path:
                raise ValueError("PROXY_ROUTES contains an empty path")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {list(LOG_LEVELS)}, got: {v}")
        return level

    @field_validator("HEALTH_CHECK_PATH")
    @classmethod
    def validate_health_check_path(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not v.startswith("/"):
            raise ValueError(f"HEALTH_CHECK_PATH must start with '/', got: {v}")
        return v


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()


# =============================================================================
# Configuration Helpers
# =============================================================================

def validate_configuration(settings: Optional[Settings] = None) -> dict:
    """
    Validate routing configuration and return a status report.

    The route table is built once without a transport, so every default host
    and endpoint error is reported the same way it would be at startup.

    Returns:
        Dictionary with validation status, errors and warnings.

    Example:
        >>> status = validate_configuration()
        >>> if not status["valid"]:
        ...     print(status["errors"])
    """
    from .proxy.handler import ProxyRouter

    settings = settings or get_settings()
    errors = []
    warnings = []

    try:
        ProxyRouter.from_settings(settings)
    except ProxyConfigurationError as e:
        errors.append(str(e))

    if not settings.PROXY_ROUTES:
        warnings.append("No routes configured; every request goes to the default host")

    if settings.HEALTH_CHECK_PATH and settings.HEALTH_CHECK_PATH in settings.PROXY_ROUTES:
        warnings.append(
            f"HEALTH_CHECK_PATH {settings.HEALTH_CHECK_PATH} shadows a configured route"
        )

    return {
        "valid": len(errors) == 0,
        "errors": errors,
        "warnings": warnings,
        "default_host": settings.PROXY_DEFAULT_HOST,
        "route_count": len(settings.PROXY_ROUTES),
    }


if __name__ == "__main__":
    """
    Validate the .env configuration:
        python -m pathproxy.config
    """
    import json

    print(json.dumps(validate_configuration(), indent=2))
