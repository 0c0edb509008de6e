"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str
    DATABASE_ECHO: bool = False

    # Application
    APP_ENV: str = "development"
    API_V1_PREFIX: str = "/api"
    LOG_LEVEL: str = "INFO"

    # Frontend
    FRONTEND_URL: str = "http://localhost:3000"

    # Schedule defaults (used when the matching preference row is missing)
    DEFAULT_WEEKEND_DAYS: str = "0,6"
    DEFAULT_UPCOMING_LENGTH: str = "7"
    DEFAULT_FIRST_DAY_OF_WEEK_IDX: str = "0"

    # How an "isbetween" amount condition becomes a posted amount:
    # "average" (midpoint), "low" (lower bound) or "high" (upper bound)
    SCHEDULE_RANGE_AMOUNT: str = "average"

    # Lookback window for candidate schedule discovery
    DISCOVERY_LOOKBACK_DAYS: int = 365

    # CORS
    @property
    def ALLOWED_ORIGINS(self) -> List[str]:
        if self.APP_ENV == "development":
            return ["*"]
        return [self.FRONTEND_URL, "http://localhost:3000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True
    )


settings = Settings()
