"""Application settings for pyvital.

Values come from ``PYVITAL_*`` environment variables, falling back to the
defaults below.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pyvital.logger import validate_log_format, validate_log_level

MIN_SAMPLE_INTERVAL = 1.0


class Settings(BaseSettings):
    """Sampling, logging and display configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PYVITAL_",
        case_sensitive=False,
        extra="ignore",
    )

    sample_interval_seconds: float = Field(
        default=2.0, description="Time between sampling ticks (floored to 1s)"
    )
    log_throttle_seconds: float = Field(
        default=5.0, gt=0, description="Minimum time between performance log rows"
    )
    top_n: int = Field(default=3, ge=1, description="Number of top processes per snapshot")
    tick_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Time after which an in-flight tick is reported stalled"
    )
    performance_log_path: Path = Field(
        default=Path("pyvital_log.csv"), description="CSV file for the performance log"
    )
    log_level: str = Field(default="INFO", description="Diagnostic log level")
    log_format: str = Field(default="console", description="Diagnostic log format (console or json)")

    @field_validator("sample_interval_seconds")
    @classmethod
    def floor_interval(cls, v: float) -> float:
        """Clamp the interval to the minimum sampling interval."""
        return max(MIN_SAMPLE_INTERVAL, v)

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, v: str) -> str:
        """Validate log level."""
        return validate_log_level(v)

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v: str) -> str:
        """Validate log format."""
        return validate_log_format(v)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, loaded once."""
    return Settings()
