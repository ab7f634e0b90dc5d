"""Heart (lives) models."""

from datetime import datetime

from pydantic import BaseModel, Field


class HeartState(BaseModel):
    """Persisted hearts record.

    ``last_practice_date`` is when the regeneration clock last started.
    """

    current_hearts: int = Field(default=5, ge=0)
    last_practice_date: datetime | None = None


class HeartsResult(BaseModel):
    current_hearts: int
    minutes_until_next_heart: int
    is_fully_regenerated: bool
