"""Application configuration using Pydantic Settings.

All configuration is loaded from environment variables.
See .env.example for the available variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ==========================================================================
    # API Keys
    # ==========================================================================
    murf_api_key: SecretStr | None = Field(
        default=None, description="Murf API key for streaming TTS (voice disabled if unset)"
    )
    groq_api_key: SecretStr | None = Field(
        default=None, description="Groq API key for reply generation"
    )
    deepgram_api_key: SecretStr | None = Field(
        default=None, description="Deepgram API key for voice message transcription"
    )

    # ==========================================================================
    # Application
    # ==========================================================================
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # ==========================================================================
    # Upstream Streaming TTS
    # ==========================================================================
    murf_ws_url: str = Field(
        default="wss://api.murf.ai/v1/speech/stream-input",
        description="Streaming text-to-speech WebSocket endpoint",
    )
    murf_sample_rate: int = Field(default=44100, description="Upstream audio sample rate")
    murf_channel_type: Literal["MONO", "STEREO"] = Field(
        default="MONO", description="Upstream audio channel layout"
    )
    murf_audio_format: Literal["MP3", "WAV", "PCM"] = Field(
        default="MP3", description="Upstream audio encoding"
    )
    murf_voice_style: str = Field(
        default="Conversational", description="Speaking style sent in the voice config"
    )

    # ==========================================================================
    # Voice Connection Pool
    # ==========================================================================
    tts_max_connections: int = Field(
        default=10, ge=1, description="Maximum concurrent upstream voice links"
    )
    tts_queue_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Max wait for a queued link request"
    )
    tts_connect_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Timeout for a single link handshake"
    )
    tts_connect_retry_attempts: int = Field(
        default=3, ge=1, description="Handshake attempts before giving up"
    )
    tts_connect_retry_delay_seconds: float = Field(
        default=2.0, ge=0, description="Fixed delay between handshake attempts"
    )
    tts_link_idle_timeout_seconds: float = Field(
        default=1800.0, gt=0, description="Idle time before a link is reclaimed"
    )

    # ==========================================================================
    # Customer Care Sessions
    # ==========================================================================
    care_session_idle_timeout_seconds: float = Field(
        default=1800.0, gt=0, description="Idle time before a care session is ended"
    )
    idle_sweep_interval_seconds: float = Field(
        default=300.0, gt=0, description="Period of the idle link/session sweep"
    )
    escalation_confidence_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Emotion confidence above which a session is escalated",
    )
    care_max_history: int = Field(
        default=10, ge=0, description="Turns of history passed to reply generation"
    )

    # ==========================================================================
    # Reply Generation
    # ==========================================================================
    groq_model: str = Field(
        default="llama-3.3-70b-versatile", description="Groq model used for replies"
    )

    # ==========================================================================
    # Derived Properties
    # ==========================================================================
    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def voice_configured(self) -> bool:
        """Whether the upstream voice service can be used at all."""
        return bool(self.murf_api_key and self.murf_api_key.get_secret_value())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use dependency injection in FastAPI:
        settings: Settings = Depends(get_settings)
    """
    return Settings()
