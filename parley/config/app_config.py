from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

class AppConfig(BaseSettings):
    """Application configuration settings."""

    # Environment
    app_env: str = Field("development")
    app_debug: bool = Field(False)
    app_host: str = Field("0.0.0.0")
    app_port: int = Field(8501)

    # Logging
    log_level: str = Field("INFO")
    log_file: Optional[str] = Field(None)

    # Session engine
    persona_seed_file: str = Field("personas.json")
    eviction_policy: str = Field("one_shot")
    ack_deadline_seconds: float = Field(2.5)

    @field_validator("app_env")
    def validate_app_env(cls, value: str) -> str:
        if value not in ["development", "staging", "production"]:
            raise ValueError("APP_ENV must be development, staging, or production")
        return value

    @field_validator("eviction_policy")
    def validate_eviction_policy(cls, value: str) -> str:
        policy = value.lower()
        if policy not in ["one_shot", "until_under_budget"]:
            raise ValueError("EVICTION_POLICY must be one_shot or until_under_budget")
        return policy

    @field_validator("ack_deadline_seconds")
    def validate_ack_deadline(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("ACK_DEADLINE_SECONDS must be positive")
        return value

    @field_validator("log_level")
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("LOG_LEVEL must be a valid Loguru level")
        return level

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache()
def get_app_config() -> AppConfig:
    """Return a cached application configuration instance."""

    return AppConfig()
