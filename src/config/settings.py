"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LeadSinkName = Literal["csv", "database", "webhook"]


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/relay.db",
        description="SQLAlchemy connection string.",
    )
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # OpenAI Realtime
    openai_api_key: str | None = Field(default=None)
    openai_realtime_model: str | None = Field(default="gpt-4o-realtime-preview")
    openai_realtime_url: str = Field(default="wss://api.openai.com/v1/realtime")
    openai_realtime_voice: str = Field(default="alloy")
    openai_connect_timeout_seconds: float = Field(default=10.0, gt=0.0)

    # Persona / call flow
    business_name: str = Field(default="Cars & Keys")
    assistant_name: str = Field(default="Sofia")
    twilio_say_voice: str = Field(default="alice")
    twilio_greeting: str = Field(default="Connecting you to our assistant now.")
    assistant_enabled: bool = Field(
        default=True,
        description="If false, the voice webhook records a voicemail instead of streaming.",
    )
    voicemail_max_length_seconds: int = Field(default=90, ge=1)
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )

    # Input pacing towards the realtime session
    pacer_mode: Literal["count", "timer"] = Field(default="count")
    pacer_commit_frames: int = Field(
        default=5,
        ge=1,
        description="Inbound 20ms frames per commit in count mode (5 frames = 100ms).",
    )
    pacer_commit_interval_ms: int = Field(default=200, ge=20)
    realtime_drain_timeout_seconds: float = Field(
        default=1.5,
        ge=0.0,
        description="How long to wait for a final response after the caller hangs up.",
    )

    # Lead persistence
    lead_sinks: list[LeadSinkName] = Field(default_factory=lambda: ["csv"])
    leads_csv_path: Path | None = Field(
        default=None,
        description="CSV file for captured leads. Defaults to <data_dir>/leads.csv.",
    )
    lead_webhook_url: str | None = Field(default=None)
    lead_webhook_api_key: str | None = Field(default=None)

    admin_api_key: str | None = Field(
        default=None,
        description="Optional key required by the admin and lead listing endpoints.",
    )

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value

    @property
    def resolved_leads_csv_path(self) -> Path:
        return self.leads_csv_path or self.data_dir / "leads.csv"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
