"""Voice translation pipeline: detect language -> fan out translations -> synthesize."""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

from src.voice_translator.errors import InvalidInput, NoViableLanguage
from src.voice_translator.languages import require_supported
from src.voice_translator.models.pipeline import (
    AudioJob,
    DetectionResult,
    PipelineResult,
    PipelineStage,
    ResponseMode,
    TranslationBranch,
    dedupe_languages,
)
from src.voice_translator.models.queue import QueueStats
from src.voice_translator.services.detector import LanguageDetector
from src.voice_translator.services.fanout import TranslationFanOut
from src.voice_translator.services.metrics import PipelineMetrics
from src.voice_translator.services.synthesis import SynthesisStage
from src.voice_translator.services.text_language import detect_text_language

if TYPE_CHECKING:
    from src.voice_translator.config import Settings
    from src.voice_translator.services.ports import (
        PreferenceProvider,
        SynthesisPort,
        TranscriptionPort,
        TranslationPort,
    )
    from src.voice_translator.services.queue import JobQueue

logger = structlog.get_logger()


@contextmanager
def _timed(timings: dict[str, float], stage: PipelineStage) -> Iterator[None]:
    started = time.monotonic()
    try:
        yield
    finally:
        timings[stage.value] = round((time.monotonic() - started) * 1000, 2)


class PipelineOrchestrator:
    """Sequences detection, translation fan-out and synthesis into one PipelineResult.

    Only a failed detection is fatal; every per-language failure is kept in
    its branch and the result is always returned.
    """

    def __init__(
        self,
        detector: LanguageDetector,
        fanout: TranslationFanOut,
        synthesis: SynthesisStage,
        preferences: PreferenceProvider | None = None,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self.detector = detector
        self.fanout = fanout
        self.synthesis = synthesis
        self.preferences = preferences
        self.metrics = metrics or PipelineMetrics()

        logger.info(
            "PipelineOrchestrator initialized",
            candidates=detector.candidates,
            threshold=detector.threshold,
            preferences=preferences is not None,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transcriber: TranscriptionPort,
        translator: TranslationPort,
        synthesizer: SynthesisPort,
        preferences: PreferenceProvider | None = None,
        metrics: PipelineMetrics | None = None,
    ) -> PipelineOrchestrator:
        concurrency, backlog = settings.queue_limits("transcription")
        detector = LanguageDetector(
            transcriber,
            settings.candidate_language_list,
            threshold=settings.early_exit_threshold,
            policy=settings.retry_policy("transcription"),
            concurrency=concurrency,
            max_backlog=backlog,
        )
        concurrency, backlog = settings.queue_limits("translation")
        fanout = TranslationFanOut(
            translator,
            policy=settings.retry_policy("translation"),
            concurrency=concurrency,
            max_backlog=backlog,
        )
        concurrency, backlog = settings.queue_limits("synthesis")
        synthesis = SynthesisStage(
            synthesizer,
            policy=settings.retry_policy("synthesis"),
            concurrency=concurrency,
            max_backlog=backlog,
        )
        return cls(detector, fanout, synthesis, preferences, metrics)

    # ---- Queue lifecycle and stats ----

    @property
    def queues(self) -> dict[str, JobQueue]:
        return {
            "transcription": self.detector.queue,
            "translation": self.fanout.queue,
            "synthesis": self.synthesis.queue,
        }

    async def start(self) -> None:
        for queue in self.queues.values():
            queue.start()

    async def stop(self) -> None:
        await asyncio.gather(*(queue.stop() for queue in self.queues.values()))

    def get_queue_stats(self) -> dict[str, QueueStats]:
        stats = {name: queue.stats() for name, queue in self.queues.items()}
        self.metrics.update_queue_stats(stats)
        return stats

    # ---- Request assembly ----

    async def build_job(
        self,
        audio: bytes,
        *,
        user_id: str | None = None,
        source_language: str | None = None,
        target_languages: list[str] | None = None,
        response_mode: ResponseMode | str | None = None,
    ) -> AudioJob:
        """Fill anything the caller left out from the user's stored preferences."""
        if user_id and self.preferences is not None and (
            source_language is None or not target_languages or response_mode is None
        ):
            prefs = await self.preferences.get_preferences(user_id)
            source_language = source_language or prefs.source_language
            target_languages = target_languages or prefs.target_languages
            response_mode = response_mode or prefs.response_mode

        return AudioJob(
            audio=audio,
            source_language=source_language,
            target_languages=target_languages or [],
            response_mode=response_mode or ResponseMode.text,
            user_id=user_id,
        )

    @staticmethod
    def _validate(job: AudioJob) -> None:
        if not job.audio:
            raise InvalidInput("Audio is empty")
        if not job.target_languages:
            raise InvalidInput("At least one target language is required")
        if job.source_language is not None:
            require_supported(job.source_language)

    # ---- Pipeline operations ----

    def submit_audio_job(self, job: AudioJob) -> asyncio.Task[PipelineResult]:
        """Validate synchronously, then run the pipeline as a task.

        Cancelling the returned task cancels the job's in-flight queue work.
        """
        self._validate(job)
        return asyncio.ensure_future(self.run(job))

    async def run(self, job: AudioJob) -> PipelineResult:
        self._validate(job)
        request_id = str(uuid.uuid4())[:8]
        log = logger.bind(request_id=request_id, targets=job.target_languages)
        log.info("Pipeline started", source=job.source_language or "auto", mode=job.response_mode.value)

        started = time.monotonic()
        timings: dict[str, float] = {}
        try:
            with _timed(timings, PipelineStage.detecting):
                detection = await self.detector.detect(job.audio, job.source_language)
        except asyncio.CancelledError:
            log.info("Pipeline cancelled", stage=PipelineStage.detecting.value)
            raise
        except Exception as e:
            log.error("Pipeline failed", stage=PipelineStage.failed.value, error=str(e))
            self.metrics.record_error(e, "audio")
            raise

        log.info(
            "Transcribed",
            language=detection.detected_language,
            confidence=detection.confidence,
            text_length=len(detection.text),
        )
        branches = await self._translate_and_synthesize(
            detection.text, detection.detected_language, job.target_languages, job.response_mode, timings
        )
        return self._aggregate(detection, branches, started, timings, log, "audio")

    async def translate_text(
        self,
        text: str,
        target_languages: list[str],
        source_language: str | None = None,
        response_mode: ResponseMode | str = ResponseMode.text,
    ) -> PipelineResult:
        """Text-only entry: identify the text's language if needed, then fan out."""
        if not text.strip():
            raise InvalidInput("Text is empty")
        targets = dedupe_languages(target_languages)
        if not targets:
            raise InvalidInput("At least one target language is required")

        log = logger.bind(request_id=str(uuid.uuid4())[:8], targets=targets)
        started = time.monotonic()
        timings: dict[str, float] = {}

        with _timed(timings, PipelineStage.detecting):
            if source_language and source_language.lower() != "auto":
                detection = DetectionResult(
                    text=text, detected_language=require_supported(source_language), confidence=1.0
                )
            else:
                detected = detect_text_language(text)
                if detected is None:
                    log.error("Pipeline failed", stage=PipelineStage.failed.value)
                    error = NoViableLanguage({"text": "language could not be identified"})
                    self.metrics.record_error(error, "text")
                    raise error
                detection = DetectionResult(
                    text=text, detected_language=detected[0], confidence=detected[1]
                )

        branches = await self._translate_and_synthesize(
            text, detection.detected_language, targets, ResponseMode.parse(response_mode), timings
        )
        return self._aggregate(detection, branches, started, timings, log, "text")

    async def _translate_and_synthesize(
        self,
        text: str,
        source_language: str,
        targets: list[str],
        mode: ResponseMode,
        timings: dict[str, float],
    ) -> list[TranslationBranch]:
        with _timed(timings, PipelineStage.translating):
            branches = await self.fanout.translate_all(text, source_language, targets)
        if mode.wants_audio:
            with _timed(timings, PipelineStage.synthesizing):
                branches = await self.synthesis.synthesize_all(branches, mode)
        return branches

    def _aggregate(
        self,
        detection: DetectionResult,
        branches: list[TranslationBranch],
        started: float,
        timings: dict[str, float],
        log,
        kind: str,
    ) -> PipelineResult:
        with _timed(timings, PipelineStage.aggregating):
            result = PipelineResult(detection=detection, branches=branches, total_duration_ms=0.0)
        result.stage_timings = dict(timings)
        result.total_duration_ms = round((time.monotonic() - started) * 1000, 2)
        self.metrics.observe_result(result, kind)
        log.info(
            "Pipeline completed",
            stage=PipelineStage.done.value,
            succeeded=result.succeeded_languages,
            failed=result.failed_languages,
            duration_ms=result.total_duration_ms,
        )
        return result
