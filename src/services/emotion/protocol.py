"""Emotion classification protocol and result type."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class EmotionResult:
    """Primary emotion of a message with a confidence in [0, 1]."""

    primary: str
    confidence: float
    scores: dict[str, float] = field(default_factory=dict)

    @classmethod
    def neutral(cls) -> EmotionResult:
        return cls(primary="neutral", confidence=1.0, scores={"neutral": 1.0})

    def to_dict(self) -> dict:
        return {
            "primaryEmotion": self.primary,
            "confidence": round(self.confidence, 3),
            "emotions": {k: round(v, 3) for k, v in self.scores.items()},
        }


class EmotionClassifier(Protocol):
    """Classifies the emotion of one customer message."""

    def classify(self, text: str, language: str = "en") -> EmotionResult: ...
