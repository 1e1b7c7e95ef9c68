# assist_gateway/core/config.py
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from assist_gateway.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class AssistantConfig:
    """Credentials and identifiers needed to talk to the assistant service."""

    api_key: str
    assistant_id: str
    base_url: str = "https://api.openai.com/v1"
    timeout_seconds: float = 30.0


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    PROJECT_NAME: str = "Assist Gateway"
    VERSION: str = "1.0.0"
    DESCRIPTION: str = "Gateway between the browser chat widget and the assistant service"
    API_V1_STR: str = "/api/v1"

    # Assistant service
    OPENAI_API_KEY: Optional[str] = None
    ASSISTANT_ID: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_TIMEOUT_SECONDS: float = 30.0

    # Comma-separated list of allowed origins, or "*"
    ALLOW_ORIGIN: str = ""

    POLL_BUDGET_MS: int = Field(default=9000, ge=0)
    EMAIL_DOMAIN: str = "edisonschools.edu.vn"

    # Audit log forwarding
    LOG_WEBHOOK_URL: Optional[str] = None
    LOG_TOKEN: Optional[str] = None
    LOG_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    LOG_TIMEOUT_SECONDS: float = 8.0

    # Server
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    @property
    def allowed_origins(self) -> List[str]:
        """Parse the allow-list, dropping empty entries"""
        return [origin.strip() for origin in self.ALLOW_ORIGIN.split(",") if origin.strip()]

    def assistant_config(self) -> AssistantConfig:
        if not self.OPENAI_API_KEY or not self.ASSISTANT_ID:
            raise ConfigurationError("Server not configured")
        return AssistantConfig(
            api_key=self.OPENAI_API_KEY,
            assistant_id=self.ASSISTANT_ID,
            base_url=self.OPENAI_BASE_URL.rstrip("/"),
            timeout_seconds=self.OPENAI_TIMEOUT_SECONDS,
        )


@lru_cache
def get_settings() -> Settings:
    """Return memoized settings so multiple imports share a single instance."""
    return Settings()


settings = get_settings()
