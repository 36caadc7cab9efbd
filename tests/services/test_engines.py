"""Tests for the HTTP engine adapters."""

import math
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from src.voice_translator.errors import PermanentEngineError, TransientEngineError
from src.voice_translator.services.engines import (
    OllamaTranslator,
    SpeechSynthesizer,
    WhisperTranscriber,
    classify_http_error,
)


def status_error(status):
    request = httpx.Request("POST", "http://engine.test/")
    return httpx.HTTPStatusError(
        f"HTTP {status}", request=request, response=httpx.Response(status, request=request)
    )


def mock_response(json_data=None, content=b"", error=None):
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = json_data or {}
    resp.content = content
    resp.raise_for_status = MagicMock(side_effect=error)
    return resp


def patched_client(mock_client_cls, response=None, side_effect=None):
    mock_client = AsyncMock()
    mock_client.post.return_value = response
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    mock_client_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return mock_client


class TestClassifyHttpError:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_retryable_statuses_are_transient(self, status):
        error = classify_http_error(status_error(status), "translation")
        assert isinstance(error, TransientEngineError)
        assert error.status_code == status
        assert error.retryable is True

    @pytest.mark.parametrize("status", [400, 401, 404, 422])
    def test_client_errors_are_permanent(self, status):
        error = classify_http_error(status_error(status), "translation")
        assert isinstance(error, PermanentEngineError)
        assert error.retryable is False

    def test_timeout_is_transient(self):
        error = classify_http_error(httpx.ReadTimeout("slow"), "synthesis")
        assert isinstance(error, TransientEngineError)
        assert error.engine == "synthesis"

    def test_connection_error_is_transient(self):
        error = classify_http_error(httpx.ConnectError("refused"), "transcription")
        assert isinstance(error, TransientEngineError)


class TestWhisperTranscriber:
    @pytest.mark.asyncio
    async def test_uses_language_probability(self):
        engine = WhisperTranscriber("http://whisper.test/", "large-v3")
        resp = mock_response({"text": " Hello there ", "language_probability": 0.87})

        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = patched_client(mock_client_cls, resp)
            result = await engine.transcribe(b"audio", "en")

        assert result.text == "Hello there"
        assert result.confidence == 0.87
        args, kwargs = mock_client.post.call_args
        assert args[0] == "http://whisper.test/v1/audio/transcriptions"
        assert kwargs["data"]["language"] == "en"
        assert kwargs["data"]["response_format"] == "verbose_json"

    @pytest.mark.asyncio
    async def test_falls_back_to_segment_logprob(self):
        engine = WhisperTranscriber("http://whisper.test", "large-v3")
        resp = mock_response(
            {"text": "hola", "segments": [{"avg_logprob": -0.2}, {"avg_logprob": -0.4}]}
        )

        with patch("httpx.AsyncClient") as mock_client_cls:
            patched_client(mock_client_cls, resp)
            result = await engine.transcribe(b"audio", "es")

        assert result.confidence == pytest.approx(math.exp(-0.3))

    @pytest.mark.asyncio
    async def test_no_confidence_information(self):
        engine = WhisperTranscriber("http://whisper.test", "large-v3")

        with patch("httpx.AsyncClient") as mock_client_cls:
            patched_client(mock_client_cls, mock_response({"text": "hi"}))
            result = await engine.transcribe(b"audio", None)

        assert result.confidence is None

    @pytest.mark.asyncio
    async def test_server_error_raises_transient(self):
        engine = WhisperTranscriber("http://whisper.test", "large-v3")

        with patch("httpx.AsyncClient") as mock_client_cls:
            patched_client(mock_client_cls, mock_response(error=status_error(503)))
            with pytest.raises(TransientEngineError) as exc_info:
                await engine.transcribe(b"audio", "en")

        assert exc_info.value.engine == "transcription"
        assert exc_info.value.status_code == 503


class TestOllamaTranslator:
    @pytest.mark.asyncio
    async def test_empty_text_returns_empty(self):
        engine = OllamaTranslator("http://ollama.test", "test-model")
        with patch("httpx.AsyncClient") as mock_client_cls:
            result = await engine.translate("  ", "es", "en")
            mock_client_cls.assert_not_called()
        assert result.text == ""

    @pytest.mark.asyncio
    async def test_calls_generate(self):
        engine = OllamaTranslator("http://ollama.test", "test-model")
        resp = mock_response({"response": " Hola mundo \n"})

        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = patched_client(mock_client_cls, resp)
            result = await engine.translate("Hello world", "es", "en")

        assert result.text == "Hola mundo"
        args, kwargs = mock_client.post.call_args
        assert args[0] == "http://ollama.test/api/generate"
        assert kwargs["json"]["model"] == "test-model"
        assert kwargs["json"]["stream"] is False
        assert "Hello world" in kwargs["json"]["prompt"]

    @pytest.mark.asyncio
    async def test_bad_request_is_permanent(self):
        engine = OllamaTranslator("http://ollama.test", "test-model")

        with patch("httpx.AsyncClient") as mock_client_cls:
            patched_client(mock_client_cls, mock_response(error=status_error(400)))
            with pytest.raises(PermanentEngineError):
                await engine.translate("Hello", "es", "en")

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        engine = OllamaTranslator("http://ollama.test", "test-model")

        with patch("httpx.AsyncClient") as mock_client_cls:
            patched_client(mock_client_cls, side_effect=httpx.ReadTimeout("slow"))
            with pytest.raises(TransientEngineError):
                await engine.translate("Hello", "es", "en")


class TestSpeechSynthesizer:
    @pytest.mark.asyncio
    async def test_returns_audio_with_locale(self):
        engine = SpeechSynthesizer("http://tts.test", "tts-1", "alloy")

        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = patched_client(mock_client_cls, mock_response(content=b"RIFF"))
            audio = await engine.synthesize("Hola", "es")

        assert audio == b"RIFF"
        _, kwargs = mock_client.post.call_args
        assert kwargs["json"]["language"] == "es-ES"
        assert kwargs["json"]["voice"] == "alloy"

    @pytest.mark.asyncio
    async def test_empty_audio_is_transient(self):
        engine = SpeechSynthesizer("http://tts.test", "tts-1", "alloy")

        with patch("httpx.AsyncClient") as mock_client_cls:
            patched_client(mock_client_cls, mock_response(content=b""))
            with pytest.raises(TransientEngineError):
                await engine.synthesize("Hola", "es")


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy_on_200(self):
        engine = OllamaTranslator("http://ollama.test", "test-model")
        resp = MagicMock(status_code=200)

        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = AsyncMock()
            mock_client.get.return_value = resp
            mock_client_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            mock_client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
            assert await engine.check_health() is True
            mock_client.get.assert_called_once_with("http://ollama.test/api/tags")

    @pytest.mark.asyncio
    async def test_unreachable_is_unhealthy(self):
        engine = OllamaTranslator("http://ollama.test", "test-model")

        with patch("httpx.AsyncClient") as mock_client_cls:
            mock_client = AsyncMock()
            mock_client.get.side_effect = httpx.ConnectError("refused")
            mock_client_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
            mock_client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
            assert await engine.check_health() is False
