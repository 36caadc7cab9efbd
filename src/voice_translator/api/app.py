"""FastAPI application factory."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.voice_translator.api.routes import create_router
from src.voice_translator.config import Settings
from src.voice_translator.languages import validate_language_map
from src.voice_translator.models.pipeline import Preferences
from src.voice_translator.services.engines import (
    OllamaTranslator,
    SpeechSynthesizer,
    WhisperTranscriber,
)
from src.voice_translator.services.pipeline import PipelineOrchestrator
from src.voice_translator.services.ports import (
    PreferenceProvider,
    SynthesisPort,
    TranscriptionPort,
    TranslationPort,
)
from src.voice_translator.services.preferences import (
    RedisPreferenceProvider,
    StaticPreferenceProvider,
)

logger = structlog.get_logger()


def _build_preferences(settings: Settings) -> PreferenceProvider:
    defaults = Preferences(
        source_language="auto",
        target_languages=settings.default_target_language_list,
        response_mode=settings.default_response_mode,
    )
    if settings.enable_preferences:
        return RedisPreferenceProvider(settings.redis_url, defaults, ttl=settings.preferences_ttl)
    return StaticPreferenceProvider(defaults)


def create_app(
    settings: Settings | None = None,
    *,
    transcriber: TranscriptionPort | None = None,
    translator: TranslationPort | None = None,
    synthesizer: SynthesisPort | None = None,
    preferences: PreferenceProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Engine clients are built from settings unless injected, and are owned by
    the app for its whole lifetime.
    """
    if settings is None:
        settings = Settings()

    validate_language_map()

    engines = {
        "transcription": transcriber
        or WhisperTranscriber(settings.whisper_url, settings.whisper_model, settings.engine_timeout),
        "translation": translator
        or OllamaTranslator(settings.ollama_url, settings.ollama_model, settings.engine_timeout),
        "synthesis": synthesizer
        or SpeechSynthesizer(
            settings.tts_url, settings.tts_model, settings.tts_voice, settings.engine_timeout
        ),
    }
    if preferences is None:
        preferences = _build_preferences(settings)

    orchestrator = PipelineOrchestrator.from_settings(
        settings,
        engines["transcription"],
        engines["translation"],
        engines["synthesis"],
        preferences,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        """Start the job queues on startup, drain them on shutdown."""
        logger.info("Starting Voice Translator service")
        await orchestrator.start()
        yield
        logger.info("Shutting down Voice Translator")
        await orchestrator.stop()
        if isinstance(preferences, RedisPreferenceProvider):
            await preferences.close()

    app = FastAPI(
        title="Voice Translator",
        description="Spoken language detection, multi-language translation and speech synthesis",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.engines = engines
    app.state.orchestrator = orchestrator
    app.include_router(create_router())

    return app
