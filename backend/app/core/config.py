from functools import lru_cache
from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

KNOWN_AI_PROVIDERS = ("gateway", "claude", "mock")


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    return [item.strip().lower() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )
    environment: str = "development"

    database_url: str = ""

    ai_provider: str = "gateway"
    ai_model: str = ""
    ai_allowed_providers_raw: str = Field(
        default="gateway,claude",
        validation_alias=AliasChoices("AI_ALLOWED_PROVIDERS"),
    )
    ai_gateway_url: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    ai_gateway_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("AI_GATEWAY_API_KEY", "LOVABLE_API_KEY"),
    )
    anthropic_api_key: str = ""
    anthropic_version: str = "2023-06-01"
    ai_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    ai_max_tokens: int = Field(default=1024, gt=0)
    ai_timeout_seconds: float = Field(default=30.0, gt=0)
    ai_debug_store_raw: bool = False

    ai_anomaly_window_days: int = Field(default=90, gt=0)
    ai_digest_window_days: int = Field(default=7, gt=0)

    cors_allow_headers: Annotated[list[str], NoDecode] = Field(default_factory=lambda: [
        "authorization",
        "x-client-info",
        "apikey",
        "content-type",
        "x-supabase-client-platform",
        "x-supabase-client-platform-version",
        "x-supabase-client-runtime",
        "x-supabase-client-runtime-version",
    ])

    @field_validator("cors_allow_headers", mode="before")
    @classmethod
    def _split_csv(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("ai_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def ai_allowed_providers(self) -> list[str]:
        """Allowlisted provider names; ``mock`` is always allowed."""
        providers = _parse_list_value(self.ai_allowed_providers_raw)
        if "mock" not in providers:
            providers.append("mock")
        return providers

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"production", "prod"}

    def validate_required_config(self) -> list[str]:
        """Return human readable configuration problems (empty when valid)."""
        errors: list[str] = []
        if not self.database_url:
            errors.append("DATABASE_URL is not configured")

        provider = self.ai_provider
        if provider not in KNOWN_AI_PROVIDERS:
            errors.append(f"AI_PROVIDER {provider!r} is not supported")
        elif provider not in self.ai_allowed_providers:
            errors.append(f"AI_PROVIDER {provider!r} is not in AI_ALLOWED_PROVIDERS")
        elif provider == "gateway" and not self.ai_gateway_api_key:
            errors.append("LOVABLE_API_KEY not configured")
        elif provider == "claude" and not self.anthropic_api_key:
            errors.append("ANTHROPIC_API_KEY not configured")
        return errors


@lru_cache
def get_settings() -> Settings:
    return Settings()
