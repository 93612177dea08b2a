"""
Shared configuration management for the Portal Access Layer.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PORTAL_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Cache
    cache_backend: str = Field(default="redis", pattern="^(redis|memory)$")
    redis_url: str = "redis://localhost:6379/0"


class PortalSettings(BaseConfig):
    """Upstream portal settings shared by the gateway and the permit proxy."""

    base_url: str = "https://portal.chedro12.com/api"
    institutions_path: str = "/list-institutions"
    programs_path: str = "/list-programs-by-institution"

    timeout_seconds: float = 30.0
    retries: int = Field(default=3, ge=1)
    backoff_ms: int = Field(default=500, ge=0)
    cache_ttl_seconds: int = Field(default=600, ge=1)

    # Read from PORTAL_API, no prefix on the secret
    api_key: str = Field(
        default="",
        validation_alias="PORTAL_API",
    )

    # Permit documents
    permit_base_url: str = "https://portal.chedro12.com/govt_auth/view_file"
    pdf_retries: int = Field(default=2, ge=1)
    pdf_min_bytes: int = Field(default=100, ge=0)
    pdf_signature_window: int = Field(default=20, ge=0)

    @property
    def backoff_seconds(self) -> float:
        return self.backoff_ms / 1000.0

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())

    def endpoint(self, path: str) -> str:
        """Join the base URL with an upstream path."""
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


class ServiceConfig(PortalSettings):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
