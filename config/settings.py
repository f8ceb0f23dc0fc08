from __future__ import annotations

from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SCOPE = (
    "free-trial-numbers:read free-trial-numbers:write messages:read messages:write "
    "virtual-numbers:read virtual-numbers:write reports:read reports:write"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Core
    ENVIRONMENT: str = Field(default="production")
    DEBUG: bool = Field(default=False)

    # Provider (Telstra Messaging v3, OAuth2 client credentials)
    TELSTRA_CLIENT_ID: str = Field(default="")
    TELSTRA_CLIENT_SECRET: str = Field(default="")
    TELSTRA_API_BASE_URL: str = Field(default="https://products.api.telstra.com/messaging/v3")
    TELSTRA_AUTH_URL: str = Field(default="https://products.api.telstra.com/v2/oauth/token")
    TELSTRA_SCOPE: str = Field(default=DEFAULT_SCOPE)
    TELSTRA_CONTENT_LANGUAGE: str = Field(default="en-au")
    PROVIDER_TIMEOUT_SECONDS: float = Field(default=10.0)
    TOKEN_EXPIRY_BUFFER_SECONDS: int = Field(default=60)

    # Limits
    MAX_LEASED_NUMBER_COUNT: int = Field(default=1)
    MESSAGES_FETCH_LIMIT: int = Field(default=50)

    # Browser access
    ALLOWED_ORIGINS: str = Field(default="http://localhost:3000,https://sms.han.life")  # comma-separated

    @field_validator("MAX_LEASED_NUMBER_COUNT", mode="before")
    @classmethod
    def _lease_cap_at_least_one(cls, v: Any) -> int:
        # Unset, garbage or non-positive values all mean "one number".
        try:
            n = int(v)
        except (TypeError, ValueError):
            return 1
        return n if n > 0 else 1

    @property
    def allowed_origins(self) -> List[str]:
        return [x.strip() for x in (self.ALLOWED_ORIGINS or "").split(",") if x.strip()]

    @property
    def provider_configured(self) -> bool:
        return bool(self.TELSTRA_CLIENT_ID and self.TELSTRA_CLIENT_SECRET)


settings = Settings()
