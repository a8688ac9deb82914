"""Settings for the messaging gateway the bot answers through."""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class GatewayConfig(BaseSettings):
    """Connection details for the interaction gateway."""

    base_url: str = Field("https://discord.com/api/v10", alias="GATEWAY_BASE_URL")
    application_id: Optional[str] = Field(None, alias="GATEWAY_APPLICATION_ID")
    token: Optional[str] = Field(None, alias="GATEWAY_TOKEN")
    register_commands: bool = Field(False, alias="GATEWAY_REGISTER_COMMANDS")
    timeout: float = Field(10.0, alias="GATEWAY_TIMEOUT")

    @property
    def can_register(self) -> bool:
        return bool(self.register_commands and self.application_id and self.token)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


@lru_cache()
def get_gateway_config() -> GatewayConfig:
    """Return a cached gateway configuration."""

    return GatewayConfig()
