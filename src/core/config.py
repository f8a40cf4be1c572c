"""
Cost Estimator Configuration
Runtime settings for the patient cost estimator.
Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


class EstimatorSettings(BaseSettings):
    """
    Cost estimator configuration settings.

    Settings only affect observability; calculation results never depend
    on them.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="ESTIMATOR_",  # All estimator settings prefixed with ESTIMATOR_
    )

    # =========================================================================
    # Service Identity
    # =========================================================================
    SERVICE_NAME: str = Field(
        default="cost-estimator",
        description="Service name attached to log records",
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Minimum log level (loguru level names)",
    )
    LOG_JSON: bool = Field(
        default=False,
        description="Emit serialized JSON log records instead of colorized text",
    )
    LOG_FILE: Optional[str] = Field(
        default=None,
        description="Optional log file path (rotated at 100 MB)",
    )
    LOG_CALCULATION_STEPS: bool = Field(
        default=False,
        description="Log every audit-trail step at DEBUG level",
    )

    # =========================================================================
    # Validators
    # =========================================================================
    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level


# Singleton instance
_estimator_settings: Optional[EstimatorSettings] = None


def get_estimator_settings() -> EstimatorSettings:
    """
    Get cached estimator settings instance.

    Returns:
        EstimatorSettings instance
    """
    global _estimator_settings
    if _estimator_settings is None:
        _estimator_settings = EstimatorSettings()
    return _estimator_settings


def reset_estimator_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _estimator_settings
    _estimator_settings = None
