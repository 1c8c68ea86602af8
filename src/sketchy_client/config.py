"""Application configuration."""

import os
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    api_base_url: str = "http://localhost:8080/api/v1"
    request_timeout_seconds: float = 120
    analysis_provider: str = "openai"
    generation_provider: str = "stabilityai"
    state_backend: Literal["file", "supabase"] = "file"
    state_dir: str = ".sketchy"
    session_key: str = "sketchyState"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    supabase_table: str = "workflow_snapshots"
    export_dir: str = "."
    log_level: str = "INFO"
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_prefix="SKETCHY_",
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )
