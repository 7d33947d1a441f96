"""Configuration for FastAPI application"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # API Settings
    API_TITLE: str = "StockPulse API"
    API_VERSION: str = "1.0.0"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8080

    # Security
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:5000",
        "http://0.0.0.0:5000",
    ]

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    GENERATE_RATE_LIMIT: str = "10/minute"
    EVALUATE_RATE_LIMIT: str = "2/minute"


settings = Settings()
