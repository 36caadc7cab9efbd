"""Spoken-language detection by trying candidate languages in priority order."""

from __future__ import annotations

import asyncio

import structlog

from src.voice_translator.errors import InvalidInput, JobDeadLettered, NoViableLanguage, VoiceTranslatorError
from src.voice_translator.languages import require_supported
from src.voice_translator.models.pipeline import (
    DetectionAttempt,
    DetectionResult,
    Transcription,
    dedupe_languages,
)
from src.voice_translator.models.queue import RetryPolicy
from src.voice_translator.services.ports import TranscriptionPort
from src.voice_translator.services.queue import JobQueue

logger = structlog.get_logger()


def _clamp_confidence(value: float | None) -> float:
    if value is None:
        return 0.0
    return min(max(float(value), 0.0), 1.0)


class LanguageDetector:
    """Transcribes audio once per candidate language until one is confident enough.

    Candidates are tried sequentially, most likely first, so a strong early
    match short-circuits the rest. Each attempt runs as a job on the
    detector's ``transcription`` queue and is bounded by its per-attempt timeout.
    """

    def __init__(
        self,
        port: TranscriptionPort,
        candidates: list[str],
        *,
        threshold: float = 0.8,
        policy: RetryPolicy | None = None,
        concurrency: int = 1,
        max_backlog: int = 50,
    ) -> None:
        candidates = dedupe_languages(candidates)
        if not candidates:
            raise ValueError("At least one candidate language is required")
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        self.port = port
        self.candidates = [require_supported(code) for code in candidates]
        self.threshold = threshold
        self.queue: JobQueue[tuple[bytes, str | None], Transcription] = JobQueue(
            "transcription",
            self._transcribe,
            concurrency=concurrency,
            max_backlog=max_backlog,
            policy=policy or RetryPolicy(max_attempts=1),
        )

    async def _transcribe(self, request: tuple[bytes, str | None]) -> Transcription:
        audio, language = request
        return await self.port.transcribe(audio, language)

    async def _attempt(self, audio: bytes, language: str) -> Transcription:
        handle = self.queue.enqueue((audio, language))
        try:
            return await self.queue.wait(handle)
        except asyncio.CancelledError:
            handle.cancel()
            raise

    async def detect(self, audio: bytes, language_hint: str | None = None) -> DetectionResult:
        """Return the best transcription and its language.

        With a hint the engine is called exactly once and any failure is raised
        as-is. Without one, failures are recorded per candidate and only
        ``NoViableLanguage`` is raised, when every candidate failed.
        """
        if not audio:
            raise InvalidInput("Audio is empty")

        if language_hint:
            return await self._detect_with_hint(audio, require_supported(language_hint))

        best: DetectionResult | None = None
        attempts: list[DetectionAttempt] = []
        errors: dict[str, str] = {}

        for language in self.candidates:
            try:
                transcription = await self._attempt(audio, language)
            except VoiceTranslatorError as exc:
                cause = exc.last_error if isinstance(exc, JobDeadLettered) else exc
                errors[language] = str(cause)
                attempts.append(DetectionAttempt(language=language, error=str(cause)))
                logger.warning("Candidate language failed", language=language, error=str(cause))
                continue

            confidence = _clamp_confidence(transcription.confidence)
            attempts.append(DetectionAttempt(language=language, confidence=confidence))
            if best is None or confidence > best.confidence:
                best = DetectionResult(
                    text=transcription.text,
                    detected_language=language,
                    confidence=confidence,
                )

            if confidence >= self.threshold:
                logger.info("Early exit on confident candidate", language=language, confidence=confidence)
                break

        if best is None:
            logger.error("No viable language", candidates=self.candidates)
            raise NoViableLanguage(errors)

        logger.info(
            "Language detected",
            language=best.detected_language,
            confidence=best.confidence,
            tried=len(attempts),
        )
        return best.model_copy(update={"attempts": attempts})

    async def _detect_with_hint(self, audio: bytes, language: str) -> DetectionResult:
        try:
            transcription = await self._attempt(audio, language)
        except JobDeadLettered as exc:
            logger.error("Transcription with explicit language failed", language=language, error=str(exc))
            if exc.last_error is not None:
                raise exc.last_error from exc
            raise

        confidence = _clamp_confidence(transcription.confidence)
        return DetectionResult(
            text=transcription.text,
            detected_language=language,
            confidence=confidence,
            attempts=[DetectionAttempt(language=language, confidence=confidence)],
        )
