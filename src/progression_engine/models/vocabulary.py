"""Vocabulary mastery models for spaced repetition."""

from datetime import datetime

from pydantic import BaseModel, Field

MAX_MASTERY = 5


class VocabularyMasteryRecord(BaseModel):
    """Leitner box state for one (user, vocabulary item) pair."""

    item_id: str
    mastery: int = Field(default=0, ge=0, le=MAX_MASTERY)
    next_review_at: datetime
    last_reviewed_at: datetime | None = None
    times_reviewed: int = Field(default=0, ge=0)
    times_correct: int = Field(default=0, ge=0)

    @property
    def accuracy(self) -> float:
        if self.times_reviewed == 0:
            return 0.0
        return self.times_correct / self.times_reviewed


class SRSUpdate(BaseModel):
    mastery: int
    next_review_at: datetime


class SRSCounts(BaseModel):
    due: int = 0
    new: int = 0
    learned: int = 0
