"""Application configuration."""

import os
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    storage_bucket: str = "enhanced-photos"
    persistence_backend: Literal["supabase", "memory"] = "supabase"
    admin_token: str
    internal_service_token: str | None = None
    openai_api_key: str
    openai_analysis_model: str = "gpt-4.1-mini"
    openai_image_model: str = "gpt-image-1"
    stripe_webhook_secret: str
    public_base_url: str | None = None

    max_image_bytes: int = 10 * 1024 * 1024
    fetch_timeout_seconds: float = 10.0
    ai_timeout_seconds: float = 45.0
    ai_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_backoff_multiplier: float = 2.0
    retry_max_jitter_seconds: float = 0.5
    storage_timeout_seconds: float = 15.0
    storage_max_attempts: int = 3
    pipeline_budget_seconds: float = 50.0
    stale_processing_seconds: float = 120.0

    enhancement_cost: int = 1
    free_enhancement_allotment: int = 2

    enhance_rate_limit: int = 10
    enhance_rate_window_seconds: float = 60.0

    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    @model_validator(mode="after")
    def check_recovery_window(self) -> "Settings":
        """Stale recovery must not reap attempts that can still be running."""
        if self.stale_processing_seconds <= self.pipeline_budget_seconds:
            raise ValueError(
                "stale_processing_seconds must exceed pipeline_budget_seconds"
            )
        return self
