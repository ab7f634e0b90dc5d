"""Streak data models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class StreakStatus(StrEnum):
    """How safe the current streak is for today."""

    PERFECT = "perfect"
    ACTIVE = "active"
    AT_RISK = "at_risk"
    BROKEN = "broken"


class StreakState(BaseModel):
    """Persisted streak record for one user."""

    last_practice_date: datetime | None = None
    current_streak_days: int = Field(default=0, ge=0)
    longest_streak_days: int = Field(default=0, ge=0)
    timezone: str = "UTC"
    # Free weekly freeze; None means never used
    last_freeze_used_date: datetime | None = None


class StreakResult(BaseModel):
    streak_days: int
    status: StreakStatus
    should_reset: bool
    is_new_streak: bool
    saved_by_freeze: bool = False


class StreakPurchase(BaseModel):
    """Outcome of spending currency on a streak freeze or repair."""

    state: StreakState
    cost: int
    remaining_currency: int
