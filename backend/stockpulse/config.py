"""
Configuration management for StockPulse using Pydantic Settings.

Loads configuration from environment variables with type validation and sane defaults.
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: str = Field(default="development", description="Environment: development, staging, production")
    debug: bool = Field(default=False, description="Debug mode")

    # Database
    database_url: str = Field(default="sqlite:///./stockpulse.db", description="SQLAlchemy database URL")

    # Reasoning service (OpenAI chat completions)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API base URL")
    openai_model: str = Field(default="gpt-4o", description="Model used for price predictions")
    openai_temperature: float = Field(default=0.1, description="Sampling temperature for predictions")
    prediction_timeout_seconds: float = Field(default=45.0, description="Timeout for one prediction request")

    # Prediction rubric
    default_price_threshold: float = Field(default=5.0, description="Price accuracy threshold (percent)")
    sideways_band_percent: float = Field(default=0.5, description="Dead band around 0% change treated as sideways")
    limited_data_samples: int = Field(default=100, description="Below this many samples history is limited")
    longer_term_min_samples: int = Field(default=200, description="Samples needed before 1w/1m predictions are trusted")

    # Market data
    market_timezone: str = Field(default="America/New_York", description="Timezone of the trading calendar")
    intraday_interval: str = Field(default="5m", description="Intraday bar interval requested from Yahoo Finance")
    intraday_period: str = Field(default="1d", description="Intraday lookback requested from Yahoo Finance")
    market_data_max_retries: int = Field(default=3, description="Attempts per Yahoo Finance request")

    # Logging
    log_level: str = Field(default="INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")
    log_format: str = Field(default="json", description="Log format: json or text")
    log_file: str = Field(default="logs/stockpulse.log", description="Log file path (empty disables)")

    # Scheduler
    scheduler_enabled: bool = Field(default=True, description="Enable background scheduler")
    evaluation_interval_minutes: int = Field(default=60, description="Evaluation pass interval")
    record_prices_hour: int = Field(default=16, description="Hour (market time) to record daily closes")
    record_prices_minute: int = Field(default=30, description="Minute to record daily closes")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Loguru level names are upper case."""
        return v.upper()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"


# Global settings instance
settings = Settings()
