# ABOUTME: Application configuration using Pydantic Settings for environment variables
# ABOUTME: Provides type-safe access to database, queue, workflow and ingestion settings

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Hard ceiling on Job.retry_count, the configured cap may only be lower
MAX_RETRY_CEILING = 5


class Config(BaseSettings):
    """Application configuration with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="RPA_PIPELINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown environment variables
    )

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./rpa_pipeline.db", description="Database URL for jobs and durable channels"
    )

    # Logging Configuration
    log_mode: Literal["interactive", "production"] = Field(default="interactive", description="Logging output mode")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging verbosity level"
    )

    log_file: Path | None = Field(default=None, description="Custom log file path (overrides default)")

    # Delivery Configuration
    poll_interval_seconds: float = Field(default=1.0, gt=0, description="Idle wait between channel polls")
    lease_seconds: float = Field(
        default=900.0, gt=0, description="How long a fetched message stays invisible before redelivery"
    )
    max_retries: int = Field(
        default=3, ge=0, le=MAX_RETRY_CEILING, description="Retry transitions allowed before a job is failed"
    )
    retry_backoff_seconds: float = Field(
        default=60.0, ge=0, description="Base delay for re-published executions, doubled per retry"
    )
    transport_retry_attempts: int = Field(
        default=3, ge=1, description="Attempts for a database or channel operation before it surfaces as an error"
    )
    transport_retry_max_wait: float = Field(
        default=2.0, ge=0, description="Upper bound on the backoff between transport attempts"
    )

    # Ingestion Filters
    allowed_senders: list[str] = Field(
        default_factory=list, description="Sender addresses accepted for ingestion (empty accepts all)"
    )
    subject_patterns: list[str] = Field(
        default_factory=list, description="Regex patterns a subject must match (empty accepts all)"
    )

    # Workflow Configuration
    erp_base_url: str = Field(default="http://localhost:8080/", description="Entry URL of the estimation system")
    erp_alternative_urls: list[str] = Field(
        default_factory=list, description="URLs tried when the base URL fails the connectivity check"
    )
    erp_financial_year: str = Field(default="2024-2025", description="Financial year chosen at user login")
    connectivity_timeout_seconds: float = Field(default=5.0, gt=0, description="Pre-flight navigation timeout")
    step_delay_seconds: float = Field(default=1.0, ge=0, description="Pacing delay between workflow steps")
    screenshot_dir: Path = Field(default=Path("logs/screenshots"), description="Where final screenshots are written")

    # Browser Configuration
    browser_headless: bool = Field(default=True, description="Run the browser without a window")
    browser_slow_mo_ms: int = Field(default=0, ge=0, description="Delay applied to every browser action")
    browser_timeout_ms: int = Field(default=30000, gt=0, description="Default browser action timeout")


# Global config instance - lazy loaded when first accessed
_config_instance: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Creates the config on first access, subsequent calls return the same instance.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reload_config() -> Config:
    """Reload configuration from environment variables.

    Useful for testing or when environment variables change at runtime.
    """
    global _config_instance
    _config_instance = Config()
    return _config_instance
