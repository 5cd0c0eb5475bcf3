"""Core configuration settings.

Centralized configuration using Pydantic Settings for environment
variable management with sensible defaults.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bitlocker_report.core.escrow import DEFAULT_WINDOWS_11_MIN_BUILD, parse_os_version

GRAPH_API_BASE = "https://graph.microsoft.com/v1.0"

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class Settings(BaseSettings):
    """Report settings loaded from environment variables and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Azure app registration (client credentials)
    azure_tenant_id: str | None = None
    azure_client_id: str | None = None
    azure_client_secret: str | None = None

    # Microsoft Graph
    graph_api_base: str = GRAPH_API_BASE
    graph_page_size: int = Field(default=999, ge=1, le=999)
    graph_timeout_seconds: float = Field(default=30.0, gt=0)

    # Report
    windows_11_min_build: str = DEFAULT_WINDOWS_11_MIN_BUILD
    report_output_path: str | None = None

    @field_validator("windows_11_min_build")
    @classmethod
    def validate_windows_11_min_build(cls, v: str) -> str:
        """Require a dotted numeric version such as 10.0.22000."""
        if parse_os_version(v) is None:
            raise ValueError(
                f"WINDOWS_11_MIN_BUILD must be a dotted numeric version, got {v!r}"
            )
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("graph_api_base")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def is_configured(self) -> bool:
        """Check if Azure credentials are present."""
        return all([
            self.azure_tenant_id,
            self.azure_client_id,
            self.azure_client_secret,
        ])


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
