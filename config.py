"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = Field(default="Social Committee Portal API")
    environment: str = Field(default="development")

    # Storage
    database_url: str = Field(default="sqlite:///./committee.db")
    storage_backend: Literal["sql", "document"] = Field(default="sql")
    # Empty path keeps the document store in memory only
    document_store_path: str = Field(default="data/committee.json")

    # Auth
    auth_enabled: bool = Field(default=True)
    jwt_secret: str = Field(default="change-this-secret-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30)

    # Twilio
    twilio_account_sid: Optional[str] = Field(default=None)
    twilio_auth_token: Optional[str] = Field(default=None)
    twilio_messaging_service_sid: Optional[str] = Field(default=None)
    twilio_sender_id: Optional[str] = Field(default=None)
    twilio_phone_number: Optional[str] = Field(default=None)
    default_country_code: str = Field(default="+354")

    # Recurring events
    scheduler_enabled: bool = Field(default=True)
    recurring_lookahead_days: int = Field(default=14)
    recurring_event_hour: int = Field(default=17, ge=0, le=23)

    seed_demo: bool = Field(default=False)
    cors_origins: list[str] = Field(default=["http://localhost:5173", "http://localhost:5000"])

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
