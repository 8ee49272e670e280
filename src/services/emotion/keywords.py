"""Keyword-based emotion classifier for customer messages."""

from __future__ import annotations

import string
from typing import Any

from src.logging_config import get_logger
from src.services.emotion.protocol import EmotionResult

logger: Any = get_logger(__name__)

# Emotion -> (keywords, intensity)
EMOTION_KEYWORDS: dict[str, tuple[frozenset[str], float]] = {
    "joy": (
        frozenset({
            "happy", "joy", "excited", "wonderful", "amazing", "fantastic", "great",
            "excellent", "delighted", "thrilled", "ecstatic", "elated", "cheerful",
            "thanks", "thank", "love", "perfect",
        }),
        0.8,
    ),
    "sadness": (
        frozenset({
            "sad", "depressed", "miserable", "unhappy", "sorrowful", "gloomy",
            "heartbroken", "devastated", "despair", "hopeless", "dejected",
        }),
        0.7,
    ),
    "anger": (
        frozenset({
            "angry", "furious", "enraged", "irritated", "annoyed", "frustrated",
            "frustrating", "outraged", "livid", "fuming", "mad", "hostile", "ridiculous",
        }),
        0.8,
    ),
    "disappointment": (
        frozenset({
            "disappointed", "disappointing", "useless", "terrible", "worst", "awful",
            "unacceptable", "pathetic", "broken",
        }),
        0.7,
    ),
    "fear": (
        frozenset({
            "afraid", "scared", "terrified", "frightened", "anxious", "worried",
            "nervous", "panicked", "dread", "fearful",
        }),
        0.7,
    ),
    "surprise": (
        frozenset({
            "surprised", "shocked", "astonished", "amazed", "stunned", "startled",
            "unbelievable", "incredible",
        }),
        0.6,
    ),
    "disgust": (
        frozenset({
            "disgusted", "revolted", "repulsed", "sickened", "appalled", "gross", "vile",
        }),
        0.6,
    ),
    "trust": (
        frozenset({
            "trust", "confident", "reliable", "secure", "safe", "trustworthy",
            "dependable", "assured",
        }),
        0.5,
    ),
    "anticipation": (
        frozenset({"eager", "anticipate", "expect", "hope", "optimistic", "enthusiastic", "keen"}),
        0.6,
    ),
    "neutral": (
        frozenset({"okay", "ok", "fine", "normal", "usual", "standard", "regular", "typical"}),
        0.3,
    ),
}

# Multi-word expressions matched against the whole message
EMOTION_PHRASES: dict[str, tuple[str, ...]] = {
    "anticipation": ("looking forward",),
    "anger": ("fed up", "sick of"),
    "disappointment": ("let down", "waste of time"),
}

# Language-specific keywords share the English intensities
LANGUAGE_KEYWORDS: dict[str, dict[str, frozenset[str]]] = {
    "hi": {
        "joy": frozenset({"खुश", "आनंद", "प्रसन्न", "उत्साहित", "मज़ेदार", "शानदार", "धन्यवाद"}),
        "sadness": frozenset({"दुखी", "उदास", "निराश", "दुख", "दर्द", "अफसोस", "खेद"}),
        "anger": frozenset({"गुस्सा", "क्रोध", "नाराज", "चिढ़", "क्रोधित", "आक्रोश"}),
        "fear": frozenset({"डर", "भय", "चिंता", "आशंका", "भयभीत", "घबराहट"}),
        "surprise": frozenset({"आश्चर्य", "हैरान", "चौंक", "अचरज", "विस्मय"}),
        "trust": frozenset({"विश्वास", "भरोसा", "आत्मविश्वास", "सुरक्षित"}),
        "neutral": frozenset({"ठीक", "सामान्य", "साधारण", "मध्यम"}),
    },
}

_STRIP_CHARS = string.punctuation + "।‘’“”…"


class KeywordEmotionClassifier:
    """Scores a message against per-emotion keyword lists.

    Confidence is the primary emotion's share of all matched intensity, so
    a message with a single strong signal scores 1.0 and mixed messages less.
    """

    def classify(self, text: str, language: str = "en") -> EmotionResult:
        if not text or not text.strip():
            return EmotionResult.neutral()

        lowered = text.lower()
        words = [w.strip(_STRIP_CHARS) for w in lowered.split()]
        words = [w for w in words if w]
        extra = LANGUAGE_KEYWORDS.get(language.split("-")[0], {})

        scores: dict[str, float] = dict.fromkeys(EMOTION_KEYWORDS, 0.0)
        for word in words:
            for emotion, (keywords, intensity) in EMOTION_KEYWORDS.items():
                if word in keywords or word in extra.get(emotion, ()):
                    scores[emotion] += intensity

        for emotion, phrases in EMOTION_PHRASES.items():
            intensity = EMOTION_KEYWORDS[emotion][1]
            scores[emotion] += sum(intensity for phrase in phrases if phrase in lowered)

        total = sum(scores.values())
        if total == 0:
            return EmotionResult.neutral()

        primary = max(scores, key=lambda emotion: scores[emotion])
        normalized = {emotion: score / total for emotion, score in scores.items() if score}
        return EmotionResult(
            primary=primary,
            confidence=scores[primary] / total,
            scores=normalized,
        )
