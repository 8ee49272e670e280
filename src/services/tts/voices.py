"""Default upstream voices per language."""

DEFAULT_VOICE_ID = "en-US-natalie"

DEFAULT_VOICES: dict[str, str] = {
    "en": "en-US-natalie",
    "hi": "hi-IN-ayushi",
    "bn": "bn-IN-anwesha",
    "ta": "ta-IN-iniya",
    "es": "es-ES-elvira",
    "fr": "fr-FR-adélie",
    "de": "de-DE-matthias",
    "it": "it-IT-lorenzo",
    "nl": "nl-NL-dirk",
    "pt": "pt-BR-heitor",
    "zh": "zh-CN-tao",
    "ja": "ja-JP-kenji",
    "ko": "ko-KR-gyeong",
}


def default_voice_id(language: str) -> str:
    """Return the default voice for a language code ("en", "hi-IN", ...)."""
    if not language:
        return DEFAULT_VOICE_ID
    base = language.split("-")[0].lower()
    return DEFAULT_VOICES.get(base, DEFAULT_VOICE_ID)
