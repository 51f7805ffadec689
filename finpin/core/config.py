from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "FinPin API"
    environment: str = "development"
    debug: bool = False
    api_version: str = "v1"
    log_level: str = "INFO"

    redis_url: str = "redis://localhost:6379/0"

    # Secrets; absence is a startup failure, never a per-request one
    master_key_seed: str = Field(..., min_length=1)
    device_token_secret: str = Field(..., min_length=1)

    signature_validity_minutes: int = Field(default=5, ge=0)
    rate_limit_per_minute: int = Field(default=60, ge=1)
    # sorted_set is atomic on Redis; sliding_log is the best-effort fallback for plain key-value stores
    rate_limit_strategy: Literal["sliding_log", "sorted_set"] = "sorted_set"
    require_device_token: bool = False

    # AI provider, ARK takes precedence over OpenAI when both are configured
    request_timeout_seconds: float = 30.0
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    ark_api_key: Optional[str] = None
    ark_base_url: Optional[str] = None
    ark_model: str = "doubao-1-5-lite-32k-250115"

    cors_origins: List[AnyHttpUrl] = Field(default_factory=list)

    def ai_provider(self) -> tuple[str, str, str] | None:
        """Returns (base_url, api_key, model) for the configured provider."""
        if self.ark_api_key and self.ark_base_url:
            return self.ark_base_url, self.ark_api_key, self.ark_model
        if self.openai_api_key and self.openai_base_url:
            return self.openai_base_url, self.openai_api_key, self.openai_model
        return None


@lru_cache()
def get_settings() -> Settings:
    return Settings()
