# hera/urp/core/config.py
"""
Central configuration for the report engine service.

Environment variables override defaults (prefix ``URP_``).
"""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings with sensible defaults."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="URP_", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"
    log_json: bool = True

    # Recipe definition files (glob patterns)
    recipes_config_paths: list[str] = Field(
        default_factory=lambda: ["config/recipes.yaml", "config/recipes/*.yaml"]
    )

    # Entity store
    entity_store_url: str = Field(
        default="http://localhost:8080/api/v2",
        description="Base URL of the universal entity store API",
    )
    entity_store_token: str = Field(default="", description="Bearer token (empty = none)")
    entity_store_timeout: float = 30.0

    # Caching
    cache_enabled: bool = True
    cache_default_ttl: int = Field(default=300, ge=-1, description="Seconds, -1 = never")
    single_flight: bool = True

    # Presentation
    default_locale: str = "en-US"
    default_currency: str | None = None

    # Exposed to recipes as {{ smart_code_prefix }}
    smart_code_prefix: str | None = None


settings = Settings()
