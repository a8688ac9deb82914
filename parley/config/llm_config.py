from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..models.model_profile import SUPPORTED_MODELS

load_dotenv()


class LlmConfig(BaseSettings):
    """Configuration settings for the chat-completion provider."""

    api_key: str = Field(..., alias="LLM_API_KEY")
    base_url: str = Field("https://api.openai.com/v1", alias="LLM_BASE_URL")
    model: str = Field("gpt-3.5-turbo", alias="LLM_MODEL")
    temperature: float = Field(0.5, alias="LLM_TEMPERATURE")
    max_tokens: int = Field(300, alias="LLM_MAX_TOKENS")
    timeout: int = Field(30, alias="LLM_TIMEOUT")

    @field_validator("model")
    def validate_model(cls, value: str) -> str:
        if value not in SUPPORTED_MODELS:
            supported = ", ".join(sorted(SUPPORTED_MODELS))
            raise ValueError(f"LLM_MODEL must be one of: {supported}")
        return value

    @field_validator("temperature")
    def validate_temperature(cls, value: float) -> float:
        if not 0.0 <= value <= 2.0:
            raise ValueError("LLM_TEMPERATURE must be between 0.0 and 2.0")
        return value

    @field_validator("timeout")
    def validate_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("LLM_TIMEOUT must be positive")
        return value

    @field_validator("max_tokens")
    def validate_max_tokens(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("LLM_MAX_TOKENS must be positive")
        return value

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


@lru_cache()
def get_llm_config() -> LlmConfig:
    """Return a cached language model configuration."""

    return LlmConfig()
