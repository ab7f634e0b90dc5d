"""Persisted per-user progress aggregate."""

from datetime import datetime

from pydantic import BaseModel, Field

from progression_engine.models.hearts import HeartState
from progression_engine.models.quest import QuestProgress
from progression_engine.models.streak import StreakState


class UserProgress(BaseModel):
    """Everything the engine reads and writes for one user.

    ``version`` is the optimistic concurrency token; the repository bumps it
    on every successful save.
    """

    user_id: str
    total_xp: int = Field(default=0, ge=0)
    today_xp: int = Field(default=0, ge=0)
    daily_goal_xp: int = Field(default=20, ge=1)
    currency: int = Field(default=0, ge=0)
    total_lessons: int = Field(default=0, ge=0)
    streak: StreakState = Field(default_factory=StreakState)
    hearts: HeartState = Field(default_factory=HeartState)
    quests: dict[str, QuestProgress] = Field(default_factory=dict)
    version: int = 0
    updated_at: datetime | None = None
