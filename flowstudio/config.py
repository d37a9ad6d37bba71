"""
Service configuration

Loaded from environment variables (prefix ``FLOWSTUDIO_``) or a ``.env`` file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FLOWSTUDIO_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Flow Studio API"
    app_version: str = "1.0.0"
    api_prefix: str = "/api/v1"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = Field(default="INFO", description="Root logging level")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Seed the store with the sample workflows from flowstudio.templates
    seed_templates: bool = True

    # Max remembered idempotency keys before the oldest are evicted
    idempotency_cache_size: int = Field(default=1024, ge=1)
    default_list_limit: int = Field(default=50, ge=1, le=100)

    # Seconds a request waits behind another request on the same workflow
    # before failing with a conflict; None waits indefinitely
    lock_timeout_seconds: Optional[float] = Field(default=10.0, gt=0)


@lru_cache
def get_settings() -> Settings:
    return Settings()
