"""Shared test fixtures for voice-translator."""

from unittest.mock import patch

import pytest

from src.voice_translator.errors import PermanentEngineError, TransientEngineError
from src.voice_translator.models.pipeline import Preferences
from src.voice_translator.models.queue import RetryPolicy
from tests.fakes import FakeSynthesizer, FakeTranscriber, FakeTranslator


@pytest.fixture
def fast_policy():
    """Three attempts, no backoff, short timeout."""
    return RetryPolicy(max_attempts=3, base_delay=0.0, attempt_timeout=1.0)


@pytest.fixture
def transient_error():
    return TransientEngineError("503 from engine", engine="translation", status_code=503)


@pytest.fixture
def permanent_error():
    return PermanentEngineError("400 from engine", engine="translation", status_code=400)


@pytest.fixture
def mock_settings():
    """Settings with test defaults (no Redis, no backoff delays)."""
    with patch.dict(
        "os.environ",
        {
            "HOST": "127.0.0.1",
            "PORT": "8000",
            "CANDIDATE_LANGUAGES": "en,es,fr",
            "EARLY_EXIT_THRESHOLD": "0.8",
            "ENABLE_PREFERENCES": "false",
            "RETRY_BASE_DELAY": "0",
            "TRANSLATION_ATTEMPT_TIMEOUT": "2",
            "SYNTHESIS_ATTEMPT_TIMEOUT": "2",
            "TRANSCRIPTION_ATTEMPT_TIMEOUT": "2",
        },
    ):
        from src.voice_translator.config import Settings

        yield Settings(_env_file=None)


@pytest.fixture
def fake_transcriber():
    return FakeTranscriber(
        results={
            "en": ("Good morning, how are you?", 0.93),
            "es": ("buenos dias", 0.41),
            "fr": ("bonjour", 0.35),
        }
    )


@pytest.fixture
def fake_translator():
    return FakeTranslator()


@pytest.fixture
def fake_synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def sample_audio():
    return b"OggS" + b"\x00" * 64


@pytest.fixture
def app(mock_settings, fake_transcriber, fake_translator, fake_synthesizer):
    """FastAPI app with fake engines and in-memory preferences."""
    from src.voice_translator.api.app import create_app
    from src.voice_translator.services.preferences import StaticPreferenceProvider

    return create_app(
        mock_settings,
        transcriber=fake_transcriber,
        translator=fake_translator,
        synthesizer=fake_synthesizer,
        preferences=StaticPreferenceProvider(
            Preferences(target_languages=["es", "fr"], response_mode="both")
        ),
    )


@pytest.fixture
def client(app):
    """TestClient running the app lifespan, so queues live on one event loop."""
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
