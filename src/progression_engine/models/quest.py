"""Quest models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class QuestStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class Quest(BaseModel):
    """Quest definition (static content)."""

    quest_id: str
    title: str = ""
    target: int = Field(gt=0)
    xp_reward: int = Field(default=0, ge=0)
    currency_reward: int = Field(default=0, ge=0)


class QuestProgress(BaseModel):
    """Per-user progress on one quest. active -> completed happens once."""

    quest_id: str
    progress: int = Field(default=0, ge=0)
    target: int = Field(gt=0)
    status: QuestStatus = QuestStatus.ACTIVE
    completed_at: datetime | None = None


class QuestApplyResult(BaseModel):
    progress: int
    status: QuestStatus
    is_completed: bool
    newly_completed: bool = False  # True only on the call that completed it
    xp_awarded: int = 0
    currency_awarded: int = 0
    completed_at: datetime | None = None
    record: QuestProgress
