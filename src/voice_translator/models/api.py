"""Request/response bodies for the HTTP API."""

import base64

from pydantic import BaseModel, Field

from src.voice_translator.models.pipeline import PipelineResult, ResponseMode


class TextTranslateRequest(BaseModel):
    """Request body for POST /v1/text/translate."""

    text: str = Field(..., description="Text to translate")
    target_languages: list[str] = Field(..., description="Target language codes")
    source_language: str | None = Field(default=None, description="Source language, or auto")
    response_mode: ResponseMode = Field(default=ResponseMode.text)


class BranchResponse(BaseModel):
    language: str
    text: str | None = None
    audio_base64: str | None = None
    error: str | None = None
    synthesis_error: str | None = None
    duration_ms: float = 0.0


class TranslateResponse(BaseModel):
    """Result of a translation request; ``partial`` when some languages failed."""

    status: str
    transcript: str
    detected_language: str
    confidence: float
    translations: list[BranchResponse]
    failed_languages: list[str]
    total_duration_ms: float
    stage_timings: dict[str, float]

    @classmethod
    def from_result(cls, result: PipelineResult) -> "TranslateResponse":
        failed = result.failed_languages
        if not failed:
            status = "completed"
        elif len(failed) < len(result.branches):
            status = "partial"
        else:
            status = "failed"

        translations = []
        for branch in result.branches:
            audio = branch.synthesized_audio
            translations.append(
                BranchResponse(
                    language=branch.target_language,
                    text=branch.translated_text,
                    audio_base64=base64.b64encode(audio).decode("ascii") if audio else None,
                    error=branch.error,
                    synthesis_error=branch.synthesis_error,
                    duration_ms=branch.timings.translation_ms + (branch.timings.synthesis_ms or 0.0),
                )
            )

        return cls(
            status=status,
            transcript=result.detection.text,
            detected_language=result.detection.detected_language,
            confidence=result.detection.confidence,
            translations=translations,
            failed_languages=failed,
            total_duration_ms=result.total_duration_ms,
            stage_timings=result.stage_timings,
        )
