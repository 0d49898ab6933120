from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "claimdesk-api"
    log_level: str = "INFO"

    # Upstream claims / pricing API
    claims_api_base_url: str = "http://127.0.0.1:8080"
    claims_api_timeout_seconds: float = 10.0

    # Approval sessions
    approval_session_limit: int = 500
    approval_session_idle_seconds: int = 30 * 60
    item_search_debounce_ms: int = 200

    # Internal console security
    console_api_key: str = ""
    console_allowed_origins: list[str] = Field(default_factory=list)

    @field_validator("console_allowed_origins", mode="before")
    @classmethod
    def _parse_origin_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
