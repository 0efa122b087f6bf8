"""
Centralized configuration for the lead qualification engine.

All settings are loaded from environment variables via .env file.
Each field reads the environment variable of the same name, upper-cased.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(default="sqlite:///./leads.db")
    db_pool_size: int = Field(default=5)
    db_max_overflow: int = Field(default=10)

    # Lead scoring (used by the shipped default form config)
    lead_score_threshold_hot: int = Field(default=70)
    lead_score_threshold_warm: int = Field(default=50)
    lead_score_threshold_cold: int = Field(default=30)

    # Progressive capture
    abandonment_window_hours: float = Field(default=24)
    lead_create_max_attempts: int = Field(default=3)

    # Logging
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    # Optional path to a JSON form config used when none is stored
    form_config_path: Optional[str] = Field(default=None)

    @property
    def abandonment_window(self) -> timedelta:
        return timedelta(hours=self.abandonment_window_hours)

    @property
    def thresholds(self) -> dict:
        return {
            "hot": self.lead_score_threshold_hot,
            "warm": self.lead_score_threshold_warm,
            "cold": self.lead_score_threshold_cold,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
