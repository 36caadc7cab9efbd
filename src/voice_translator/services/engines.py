"""HTTP engine adapters implementing the transcription, translation and synthesis ports.

- Transcription: OpenAI-compatible ``/v1/audio/transcriptions`` (faster-whisper servers)
- Translation: Ollama ``/api/generate``
- Synthesis: OpenAI-compatible ``/v1/audio/speech`` (OpenedAI Speech, Piper front-ends)

Transport errors, timeouts, 429 and 5xx responses become ``TransientEngineError``;
any other 4xx becomes ``PermanentEngineError`` so the queue does not retry it.
"""

from __future__ import annotations

import math
from typing import Any

import httpx
import structlog

from src.voice_translator.errors import EngineError, PermanentEngineError, TransientEngineError
from src.voice_translator.languages import to_locale
from src.voice_translator.models.pipeline import Transcription, Translation

logger = structlog.get_logger()

_RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def classify_http_error(exc: Exception, engine: str) -> EngineError:
    """Map an httpx failure onto the transient/permanent engine error split."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        message = f"{engine} returned HTTP {status}"
        if status in _RETRYABLE_STATUS_CODES or status >= 500:
            return TransientEngineError(message, engine=engine, status_code=status)
        return PermanentEngineError(message, engine=engine, status_code=status)
    if isinstance(exc, httpx.TimeoutException):
        return TransientEngineError(f"{engine} timed out", engine=engine)
    if isinstance(exc, httpx.TransportError):
        return TransientEngineError(f"{engine} unreachable: {exc}", engine=engine)
    return TransientEngineError(f"{engine} call failed: {exc}", engine=engine)


class HttpEngine:
    """Shared plumbing: one short-lived AsyncClient per call, errors classified."""

    engine = "engine"
    health_path = "/"

    def __init__(self, base_url: str, timeout: float = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout=timeout)

    async def _post(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}{path}", **kwargs)
                resp.raise_for_status()
                return resp
        except httpx.HTTPError as e:
            error = classify_http_error(e, self.engine)
            logger.warning("Engine call failed", engine=self.engine, path=path, error=str(error))
            raise error from e

    async def check_health(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(f"{self.base_url}{self.health_path}")
                return resp.status_code == 200
        except Exception:
            return False


class WhisperTranscriber(HttpEngine):
    engine = "transcription"
    health_path = "/v1/models"

    def __init__(self, base_url: str, model: str, timeout: float = 60.0) -> None:
        super().__init__(base_url, timeout)
        self.model = model

    async def transcribe(self, audio: bytes, language_hint: str | None) -> Transcription:
        data = {"model": self.model, "response_format": "verbose_json"}
        if language_hint:
            data["language"] = language_hint

        resp = await self._post(
            "/v1/audio/transcriptions",
            files={"file": ("audio.ogg", audio, "application/octet-stream")},
            data=data,
        )
        payload = resp.json()
        text = (payload.get("text") or "").strip()
        return Transcription(text=text, confidence=self._confidence(payload))

    @staticmethod
    def _confidence(payload: dict[str, Any]) -> float | None:
        """Prefer the engine's language probability; fall back to mean segment log-probability."""
        probability = payload.get("language_probability")
        if probability is not None:
            return float(probability)
        logprobs = [
            seg["avg_logprob"]
            for seg in payload.get("segments") or []
            if seg.get("avg_logprob") is not None
        ]
        if not logprobs:
            return None
        return math.exp(sum(logprobs) / len(logprobs))


class OllamaTranslator(HttpEngine):
    engine = "translation"
    health_path = "/api/tags"

    def __init__(self, base_url: str, model: str, timeout: float = 60.0) -> None:
        super().__init__(base_url, timeout)
        self.model = model

    async def translate(
        self, text: str, target_language: str, source_language: str | None = None
    ) -> Translation:
        if not text.strip():
            return Translation(text="")

        source = source_language or "the detected source language"
        prompt = (
            f"Translate the following text from {source} to {target_language}. "
            f"Return ONLY the translation, no explanations.\n\n{text}"
        )
        resp = await self._post(
            "/api/generate",
            json={"model": self.model, "prompt": prompt, "stream": False},
        )
        return Translation(text=resp.json().get("response", "").strip())


class SpeechSynthesizer(HttpEngine):
    engine = "synthesis"
    health_path = "/v1/models"

    def __init__(self, base_url: str, model: str, voice: str, timeout: float = 60.0) -> None:
        super().__init__(base_url, timeout)
        self.model = model
        self.voice = voice

    async def synthesize(self, text: str, language: str) -> bytes:
        resp = await self._post(
            "/v1/audio/speech",
            json={
                "model": self.model,
                "voice": self.voice,
                "input": text,
                "language": to_locale(language),
            },
        )
        if not resp.content:
            raise TransientEngineError("synthesis returned no audio", engine=self.engine)
        return resp.content
