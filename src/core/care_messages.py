"""Fixed customer-facing phrases, localized where a template exists."""

from __future__ import annotations

WELCOME_TEMPLATES: dict[str, str] = {
    "en": (
        "Hello! I'm your AI assistant for {project}. I'm here to help you with any "
        "questions about our services. How can I assist you today?"
    ),
    "hi": (
        "नमस्ते! मैं {project} के लिए आपका AI सहायक हूँ। मैं हमारी सेवाओं से जुड़े "
        "किसी भी प्रश्न में आपकी मदद के लिए यहाँ हूँ। आज मैं आपकी क्या सहायता कर सकता हूँ?"
    ),
}

ERROR_MESSAGES: dict[str, str] = {
    "en": (
        "I apologize, but I'm experiencing some technical difficulties. "
        "Please try again in a moment."
    ),
    "hi": "क्षमा करें, मुझे कुछ तकनीकी समस्या आ रही है। कृपया थोड़ी देर में फिर से प्रयास करें।",
}

REPEAT_MESSAGES: dict[str, str] = {
    "en": "I'm sorry, I couldn't understand what you said. Could you please repeat that?",
    "hi": "क्षमा करें, मैं समझ नहीं पाया कि आपने क्या कहा। क्या आप कृपया दोहरा सकते हैं?",
}

EMPATHY_PREFIXES: dict[str, str] = {
    "en": "I understand this might be frustrating. ",
    "hi": "मैं समझता हूँ कि यह परेशान करने वाला हो सकता है। ",
}

ENCOURAGEMENT_SUFFIXES: dict[str, str] = {
    "en": " I'm glad I could help!",
    "hi": " मुझे खुशी है कि मैं मदद कर सका!",
}

NEGATIVE_EMOTIONS = frozenset({
    "anger", "angry", "sadness", "sad", "frustration", "frustrated",
    "disappointment", "disappointed",
})
POSITIVE_EMOTIONS = frozenset({"joy", "happy", "excited", "satisfied"})


def _base_language(language: str) -> str:
    return language.split("-")[0].lower() if language else "en"


def welcome_message(project_name: str, language: str = "en") -> str:
    template = WELCOME_TEMPLATES.get(_base_language(language), WELCOME_TEMPLATES["en"])
    return template.format(project=project_name)


def error_message(language: str = "en") -> str:
    return ERROR_MESSAGES.get(_base_language(language), ERROR_MESSAGES["en"])


def repeat_message(language: str = "en") -> str:
    return REPEAT_MESSAGES.get(_base_language(language), REPEAT_MESSAGES["en"])


def shape_reply(reply: str, emotion: str | None, language: str = "en") -> str:
    """Prepend empathy for negative emotions, append encouragement for positive ones.

    Languages without a localized phrase get the reply unchanged.
    """
    if not emotion:
        return reply
    lang = _base_language(language)
    label = emotion.lower()
    if label in NEGATIVE_EMOTIONS and lang in EMPATHY_PREFIXES:
        return EMPATHY_PREFIXES[lang] + reply
    if label in POSITIVE_EMOTIONS and lang in ENCOURAGEMENT_SUFFIXES:
        return reply + ENCOURAGEMENT_SUFFIXES[lang]
    return reply
