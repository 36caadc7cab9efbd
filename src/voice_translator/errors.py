"""Typed errors raised by the translation core.

Every error carries a ``retryable`` flag. The job queue reads it to decide
between scheduling another attempt and dead-lettering the job straight away;
exceptions that are not part of this hierarchy are treated as retryable.
"""

from __future__ import annotations


class VoiceTranslatorError(Exception):
    """Base class for all errors raised by the core."""

    retryable: bool = True


class InvalidInput(VoiceTranslatorError):
    """Caller supplied input that can never succeed (empty audio, no targets)."""

    retryable = False


class UnsupportedLanguage(InvalidInput):
    """Language code missing from the supported language map."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Unsupported language: {code!r}")
        self.code = code


class EngineError(VoiceTranslatorError):
    """An external engine (ASR, MT, TTS) call failed."""

    def __init__(self, message: str, *, engine: str = "", status_code: int | None = None) -> None:
        super().__init__(message)
        self.engine = engine
        self.status_code = status_code


class TransientEngineError(EngineError):
    """Timeouts, rate limits, 5xx responses: worth another attempt."""

    retryable = True


class PermanentEngineError(EngineError):
    """Rejected input (bad language, unsupported format): never retried."""

    retryable = False


class NoViableLanguage(VoiceTranslatorError):
    """Every detection candidate failed to transcribe."""

    retryable = False

    def __init__(self, errors: dict[str, str]) -> None:
        tried = ", ".join(errors) or "none"
        super().__init__(f"No candidate language could be transcribed (tried: {tried})")
        self.errors = errors


class QueueSaturated(VoiceTranslatorError):
    """The queue backlog limit was reached; the job was not admitted."""

    def __init__(self, queue: str, limit: int) -> None:
        super().__init__(f"Queue {queue!r} is saturated (backlog limit {limit})")
        self.queue = queue
        self.limit = limit


class JobTimeout(VoiceTranslatorError):
    """A single attempt exceeded its timeout."""

    retryable = True

    def __init__(self, job_id: str, timeout: float) -> None:
        super().__init__(f"Job {job_id} attempt timed out after {timeout:.2f}s")
        self.job_id = job_id
        self.timeout = timeout


class JobDeadLettered(VoiceTranslatorError):
    """A job exhausted its attempts or hit a non-retryable error."""

    retryable = False

    def __init__(self, job_id: str, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(
            f"Job {job_id} dead-lettered after {attempts} attempt(s): {last_error}"
        )
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error


class JobCancelled(VoiceTranslatorError):
    """A job was cancelled before it reached a terminal state."""

    retryable = False

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} was cancelled")
        self.job_id = job_id


def describe_error(exc: BaseException) -> str:
    """Short, user-presentable description of a failure (no engine internals)."""
    if isinstance(exc, JobDeadLettered) and exc.last_error is not None:
        exc = exc.last_error
    if isinstance(exc, EngineError):
        engine = exc.engine or "engine"
        return f"{engine} unavailable" if exc.retryable else f"{engine} rejected the request"
    if isinstance(exc, JobTimeout):
        return "timed out"
    if isinstance(exc, QueueSaturated):
        return "service busy"
    if isinstance(exc, UnsupportedLanguage):
        return f"unsupported language {exc.code}"
    return type(exc).__name__
