"""Optional per-language speech synthesis over translated branches."""

from __future__ import annotations

import asyncio
from typing import NamedTuple

import structlog

from src.voice_translator.errors import QueueSaturated, VoiceTranslatorError, describe_error
from src.voice_translator.languages import require_supported
from src.voice_translator.models.pipeline import ResponseMode, TranslationBranch
from src.voice_translator.models.queue import RetryPolicy
from src.voice_translator.services.ports import SynthesisPort
from src.voice_translator.services.queue import JobHandle, JobQueue

logger = structlog.get_logger()


class SynthesisRequest(NamedTuple):
    text: str
    language: str


class SynthesisStage:
    def __init__(
        self,
        port: SynthesisPort,
        *,
        policy: RetryPolicy | None = None,
        concurrency: int = 4,
        max_backlog: int = 200,
    ) -> None:
        self.port = port
        self.queue: JobQueue[SynthesisRequest, bytes] = JobQueue(
            "synthesis",
            self._synthesize,
            concurrency=concurrency,
            max_backlog=max_backlog,
            policy=policy,
        )

    async def _synthesize(self, request: SynthesisRequest) -> bytes:
        language = require_supported(request.language)
        return await self.port.synthesize(request.text, language)

    async def synthesize_all(
        self, branches: list[TranslationBranch], response_mode: ResponseMode | str
    ) -> list[TranslationBranch]:
        """Return the branches with synthesis fields filled in.

        Text mode is a passthrough. Branches whose translation failed are left
        untouched: there is nothing to speak, so no synthesis error either.
        """
        if not ResponseMode.parse(response_mode).wants_audio:
            return list(branches)

        submissions: dict[int, JobHandle | QueueSaturated] = {}
        for index, branch in enumerate(branches):
            if branch.translated_text is None:
                continue
            try:
                submissions[index] = self.queue.enqueue(
                    SynthesisRequest(branch.translated_text, branch.target_language)
                )
            except QueueSaturated as exc:
                submissions[index] = exc

        if not submissions:
            return list(branches)

        try:
            updated = await asyncio.gather(
                *(self._collect(branches[i], sub) for i, sub in submissions.items())
            )
        except asyncio.CancelledError:
            for sub in submissions.values():
                if isinstance(sub, JobHandle):
                    sub.cancel()
            raise

        result = list(branches)
        for index, branch in zip(submissions, updated):
            result[index] = branch
        return result

    async def _collect(
        self, branch: TranslationBranch, submission: JobHandle | QueueSaturated
    ) -> TranslationBranch:
        if isinstance(submission, QueueSaturated):
            logger.warning("Synthesis not admitted", target=branch.target_language)
            return branch.model_copy(update={"synthesis_error": describe_error(submission)})

        try:
            audio = await self.queue.wait(submission)
        except VoiceTranslatorError as exc:
            logger.warning(
                "Synthesis branch failed",
                target=branch.target_language,
                job_id=submission.id,
                attempts=submission.attempts,
                error=str(exc),
            )
            update = {"synthesis_error": describe_error(exc)}
        else:
            update = {"synthesized_audio": audio}

        timings = branch.timings.model_copy(
            update={"synthesis_ms": submission.duration_ms, "synthesis_attempts": submission.attempts}
        )
        return branch.model_copy(update={**update, "timings": timings})
