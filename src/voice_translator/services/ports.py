"""Interfaces of the external engines and collaborators the core depends on."""

from typing import Protocol, runtime_checkable

from src.voice_translator.models.pipeline import Preferences, Transcription, Translation


@runtime_checkable
class TranscriptionPort(Protocol):
    async def transcribe(self, audio: bytes, language_hint: str | None) -> Transcription: ...


@runtime_checkable
class TranslationPort(Protocol):
    async def translate(
        self, text: str, target_language: str, source_language: str | None = None
    ) -> Translation: ...


@runtime_checkable
class SynthesisPort(Protocol):
    async def synthesize(self, text: str, language: str) -> bytes: ...


@runtime_checkable
class PreferenceProvider(Protocol):
    async def get_preferences(self, user_id: str) -> Preferences: ...
