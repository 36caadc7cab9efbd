"""Pydantic models for the voice translation pipeline."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResponseMode(str, Enum):
    """What the caller wants back for each target language."""

    text = "text"
    audio = "audio"
    both = "both"

    @classmethod
    def parse(cls, value: "str | ResponseMode") -> "ResponseMode":
        if isinstance(value, ResponseMode):
            return value
        value = value.strip().lower()
        # "voice" is what older clients stored in preferences
        if value == "voice":
            return cls.audio
        return cls(value)

    @property
    def wants_audio(self) -> bool:
        return self is not ResponseMode.text


class PipelineStage(str, Enum):
    detecting = "detecting"
    translating = "translating"
    synthesizing = "synthesizing"
    aggregating = "aggregating"
    done = "done"
    failed = "failed"


def dedupe_languages(codes: list[str]) -> list[str]:
    """Lower-case, strip and drop duplicates while keeping request order."""
    seen: list[str] = []
    for code in codes:
        normalized = code.strip().lower()
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen


class AudioJob(BaseModel):
    """One incoming request: audio plus the languages and mode to produce."""

    model_config = ConfigDict(frozen=True)

    audio: bytes = Field(repr=False)
    source_language: str | None = None
    target_languages: list[str]
    response_mode: ResponseMode = ResponseMode.text
    user_id: str | None = None

    @field_validator("source_language")
    @classmethod
    def _auto_means_detect(cls, value: str | None) -> str | None:
        if value is None or value.strip().lower() in ("", "auto"):
            return None
        return value.strip().lower()

    @field_validator("target_languages")
    @classmethod
    def _dedupe_targets(cls, value: list[str]) -> list[str]:
        return dedupe_languages(value)

    @field_validator("response_mode", mode="before")
    @classmethod
    def _parse_mode(cls, value):
        return ResponseMode.parse(value) if isinstance(value, str) else value


class Transcription(BaseModel):
    """What a transcription engine returns."""

    text: str
    confidence: float | None = None


class Translation(BaseModel):
    """What a translation engine returns."""

    text: str


class DetectionAttempt(BaseModel):
    model_config = ConfigDict(frozen=True)

    language: str
    confidence: float | None = None
    error: str | None = None


class DetectionResult(BaseModel):
    """Best transcription and the language it was produced with."""

    model_config = ConfigDict(frozen=True)

    text: str
    detected_language: str
    confidence: float = Field(ge=0.0, le=1.0)
    attempts: list[DetectionAttempt] = Field(default_factory=list)


class BranchTimings(BaseModel):
    model_config = ConfigDict(frozen=True)

    translation_ms: float = 0.0
    translation_attempts: int = 0
    synthesis_ms: float | None = None
    synthesis_attempts: int = 0


class TranslationBranch(BaseModel):
    """Per-target-language result of translation and (optional) synthesis."""

    model_config = ConfigDict(frozen=True)

    target_language: str
    translated_text: str | None = None
    error: str | None = None
    synthesized_audio: bytes | None = Field(default=None, repr=False)
    synthesis_error: str | None = None
    timings: BranchTimings = Field(default_factory=BranchTimings)

    @property
    def succeeded(self) -> bool:
        return self.translated_text is not None


class PipelineResult(BaseModel):
    """Aggregated outcome of one AudioJob."""

    detection: DetectionResult
    branches: list[TranslationBranch]
    total_duration_ms: float
    stage_timings: dict[str, float] = Field(default_factory=dict)

    @property
    def succeeded_languages(self) -> list[str]:
        return [b.target_language for b in self.branches if b.succeeded]

    @property
    def failed_languages(self) -> list[str]:
        return [b.target_language for b in self.branches if not b.succeeded]


class Preferences(BaseModel):
    """Stored per-user defaults."""

    source_language: str = "auto"
    target_languages: list[str] = Field(default_factory=lambda: ["en"])
    response_mode: ResponseMode = ResponseMode.text

    @field_validator("target_languages", mode="before")
    @classmethod
    def _split_targets(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return dedupe_languages(value)

    @field_validator("response_mode", mode="before")
    @classmethod
    def _parse_mode(cls, value):
        return ResponseMode.parse(value) if isinstance(value, str) else value
