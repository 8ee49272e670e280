"""Emotion classification of customer messages."""

from src.services.emotion.keywords import KeywordEmotionClassifier
from src.services.emotion.protocol import EmotionClassifier, EmotionResult

__all__ = [
    "EmotionClassifier",
    "EmotionResult",
    "KeywordEmotionClassifier",
]
