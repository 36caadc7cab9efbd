"""Centralized configuration via pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict

from src.voice_translator.models.pipeline import dedupe_languages
from src.voice_translator.models.queue import RetryPolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Service
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    # Engines
    whisper_url: str = "http://localhost:8001"
    whisper_model: str = "Systran/faster-whisper-medium"
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2:1b"
    tts_url: str = "http://localhost:8002"
    tts_model: str = "tts-1"
    tts_voice: str = "alloy"
    engine_timeout: float = 60.0

    # Language detection
    candidate_languages: str = "en,es,fr,de,hi,ar,pt"
    early_exit_threshold: float = 0.8

    # Queues
    transcription_concurrency: int = 2
    transcription_max_backlog: int = 50
    transcription_max_attempts: int = 1
    transcription_attempt_timeout: float = 60.0

    translation_concurrency: int = 4
    translation_max_backlog: int = 200
    translation_max_attempts: int = 3
    translation_attempt_timeout: float = 30.0

    synthesis_concurrency: int = 4
    synthesis_max_backlog: int = 200
    synthesis_max_attempts: int = 3
    synthesis_attempt_timeout: float = 30.0

    retry_base_delay: float = 2.0
    retry_multiplier: float = 2.0
    retry_max_delay: float = 30.0

    # User preferences
    enable_preferences: bool = True
    redis_url: str = "redis://localhost:6379"
    preferences_ttl: int = 86400 * 7
    default_target_languages: str = "en"
    default_response_mode: str = "text"

    @property
    def candidate_language_list(self) -> list[str]:
        return dedupe_languages(self.candidate_languages.split(","))

    @property
    def default_target_language_list(self) -> list[str]:
        return dedupe_languages(self.default_target_languages.split(","))

    def retry_policy(self, job_type: str) -> RetryPolicy:
        """Build the retry policy for one queue ("transcription", "translation", "synthesis")."""
        return RetryPolicy(
            max_attempts=getattr(self, f"{job_type}_max_attempts"),
            attempt_timeout=getattr(self, f"{job_type}_attempt_timeout"),
            base_delay=self.retry_base_delay,
            multiplier=self.retry_multiplier,
            max_delay=self.retry_max_delay,
        )

    def queue_limits(self, job_type: str) -> tuple[int, int]:
        """Return (concurrency, max_backlog) for one queue."""
        return (
            getattr(self, f"{job_type}_concurrency"),
            getattr(self, f"{job_type}_max_backlog"),
        )
