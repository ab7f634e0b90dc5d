"""Adaptive difficulty models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Difficulty(StrEnum):
    """Exercise difficulty, ordered easy < medium < hard."""

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)

    def step(self, direction: int) -> "Difficulty":
        """Move one level up (+1) or down (-1), saturating at the ends."""
        index = max(0, min(len(_ORDER) - 1, self.rank + direction))
        return _ORDER[index]

    @property
    def label(self) -> str:
        return {
            Difficulty.EASY: "Beginner",
            Difficulty.MEDIUM: "Intermediate",
            Difficulty.HARD: "Advanced",
        }[self]


_ORDER = [Difficulty.EASY, Difficulty.MEDIUM, Difficulty.HARD]


class AdaptiveConfig(BaseModel):
    """Tuning constants for rolling-window difficulty adjustment."""

    enabled: bool = True
    window_size: int = Field(default=5, ge=1)
    increase_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    decrease_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    max_adjustments: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "AdaptiveConfig":
        if self.decrease_threshold >= self.increase_threshold:
            raise ValueError("decrease_threshold must be below increase_threshold")
        return self


class DifficultyChange(BaseModel):
    at: datetime
    from_difficulty: Difficulty
    to_difficulty: Difficulty
    accuracy: float


class AdaptiveSessionState(BaseModel):
    """Session-scoped adaptive difficulty state. Not persisted across sessions."""

    current_difficulty: Difficulty = Difficulty.MEDIUM
    recent_answers: list[bool] = Field(default_factory=list)
    adjustments_made: int = Field(default=0, ge=0)
    history: list[DifficultyChange] = Field(default_factory=list)


class Exercise(BaseModel):
    """Minimal exercise shape the selector needs. Extra fields are kept."""

    model_config = ConfigDict(extra="allow")

    id: str
    difficulty: Difficulty = Difficulty.MEDIUM
