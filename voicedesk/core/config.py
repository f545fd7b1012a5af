"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI
    openai_api_key: str
    realtime_model: str = "gpt-realtime"
    realtime_voice: str = "sage"
    transcription_model: str = "gpt-4o-transcribe"
    initial_greeting_text: str = "Hello"

    # Twilio
    byoc_trunk_sid: Optional[str] = None
    dial_timeout_seconds: int = 30

    # Database
    database_url: str

    # Company
    company_name: str = "VoiceDesk"
    knowledge_file: Optional[str] = None

    # Transfer timing (empirical, tune against real carrier callback latency)
    transfer_grace_period_seconds: float = 3.0
    transfer_close_timeout_seconds: float = 3.0

    # Media stream tolerance
    malformed_frame_limit: int = 3
    malformed_frame_window_seconds: float = 2.0

    # Logging
    log_level: str = "INFO"

    # Server
    base_url: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
