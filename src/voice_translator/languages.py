"""Static mapping from short language codes to the locales the engines expect."""

import re

from src.voice_translator.errors import UnsupportedLanguage

LANGUAGE_LOCALES: dict[str, str] = {
    "ar": "ar-XA",
    "de": "de-DE",
    "en": "en-US",
    "es": "es-ES",
    "fr": "fr-FR",
    "hi": "hi-IN",
    "it": "it-IT",
    "ja": "ja-JP",
    "ko": "ko-KR",
    "nl": "nl-NL",
    "pl": "pl-PL",
    "pt": "pt-BR",
    "ru": "ru-RU",
    "tr": "tr-TR",
    "uk": "uk-UA",
    "zh": "zh-CN",
}

_LOCALE_RE = re.compile(r"^[a-z]{2}-[A-Z]{2}$")


def validate_language_map(mapping: dict[str, str] | None = None) -> None:
    """Fail at startup if any entry is not a well-formed ``xx -> xx-YY`` pair."""
    mapping = LANGUAGE_LOCALES if mapping is None else mapping
    for code, locale in mapping.items():
        if not _LOCALE_RE.match(locale) or locale.split("-")[0] != code:
            raise ValueError(f"Invalid language map entry {code!r} -> {locale!r}")


def normalize(code: str) -> str:
    return code.strip().lower()


def is_supported(code: str) -> bool:
    return normalize(code) in LANGUAGE_LOCALES


def require_supported(code: str) -> str:
    """Return the normalized code, or raise UnsupportedLanguage."""
    normalized = normalize(code)
    if normalized not in LANGUAGE_LOCALES:
        raise UnsupportedLanguage(code)
    return normalized


def to_locale(code: str) -> str:
    """Map a short code (``"es"``) to its locale (``"es-ES"``)."""
    return LANGUAGE_LOCALES[require_supported(code)]


def supported_languages() -> list[str]:
    return sorted(LANGUAGE_LOCALES)
