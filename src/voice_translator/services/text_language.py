"""Language identification for plain text (no audio involved)."""

import structlog
from langdetect import DetectorFactory, LangDetectException, detect_langs

from src.voice_translator.languages import is_supported

# Configure deterministic language detection
DetectorFactory.seed = 0

logger = structlog.get_logger()


def detect_text_language(text: str) -> tuple[str, float] | None:
    """Return ``(code, probability)`` for the most likely supported language, or None."""
    if not text.strip():
        return None
    try:
        candidates = detect_langs(text)
    except LangDetectException as e:
        logger.warning("Text language detection failed", error=str(e))
        return None

    for candidate in candidates:
        # langdetect reports Chinese as zh-cn / zh-tw
        code = candidate.lang.split("-")[0].lower()
        if is_supported(code):
            return code, round(float(candidate.prob), 3)
    return None
