"""Translation fan-out: one independent queue job per target language."""

from __future__ import annotations

import asyncio
from typing import NamedTuple

import structlog

from src.voice_translator.errors import QueueSaturated, VoiceTranslatorError, describe_error
from src.voice_translator.languages import require_supported
from src.voice_translator.models.pipeline import BranchTimings, TranslationBranch, dedupe_languages
from src.voice_translator.models.queue import RetryPolicy
from src.voice_translator.services.ports import TranslationPort
from src.voice_translator.services.queue import JobHandle, JobQueue

logger = structlog.get_logger()


class TranslationRequest(NamedTuple):
    text: str
    target_language: str
    source_language: str | None


class TranslationFanOut:
    """Translates one text into many languages without letting one language sink the others."""

    def __init__(
        self,
        port: TranslationPort,
        *,
        policy: RetryPolicy | None = None,
        concurrency: int = 4,
        max_backlog: int = 200,
    ) -> None:
        self.port = port
        self.queue: JobQueue[TranslationRequest, str] = JobQueue(
            "translation",
            self._translate,
            concurrency=concurrency,
            max_backlog=max_backlog,
            policy=policy,
        )

    async def _translate(self, request: TranslationRequest) -> str:
        target = require_supported(request.target_language)
        translation = await self.port.translate(request.text, target, request.source_language)
        return translation.text

    async def translate_all(
        self, text: str, source_language: str | None, target_languages: list[str]
    ) -> list[TranslationBranch]:
        """Return one branch per (deduplicated) target language, in request order."""
        targets = dedupe_languages(target_languages)
        if not targets:
            return []

        submissions: list[JobHandle | QueueSaturated] = []
        for target in targets:
            try:
                submissions.append(
                    self.queue.enqueue(TranslationRequest(text, target, source_language))
                )
            except QueueSaturated as exc:
                submissions.append(exc)

        logger.info(
            "Translation fan-out started",
            source=source_language,
            targets=targets,
            text_length=len(text),
        )
        try:
            branches = await asyncio.gather(
                *(self._collect(target, sub) for target, sub in zip(targets, submissions))
            )
        except asyncio.CancelledError:
            for sub in submissions:
                if isinstance(sub, JobHandle):
                    sub.cancel()
            raise
        return list(branches)

    async def _collect(self, target: str, submission: JobHandle | QueueSaturated) -> TranslationBranch:
        if isinstance(submission, QueueSaturated):
            logger.warning("Translation not admitted", target=target, error=str(submission))
            return TranslationBranch(target_language=target, error=describe_error(submission))

        try:
            translated = await self.queue.wait(submission)
        except VoiceTranslatorError as exc:
            logger.warning(
                "Translation branch failed",
                target=target,
                job_id=submission.id,
                attempts=submission.attempts,
                error=str(exc),
            )
            return TranslationBranch(
                target_language=target,
                error=describe_error(exc),
                timings=BranchTimings(
                    translation_ms=submission.duration_ms,
                    translation_attempts=submission.attempts,
                ),
            )

        return TranslationBranch(
            target_language=target,
            translated_text=translated,
            timings=BranchTimings(
                translation_ms=submission.duration_ms,
                translation_attempts=submission.attempts,
            ),
        )
