"""XP level models."""

from pydantic import BaseModel, Field


class Level(BaseModel):
    """A level band covering ``[min_xp, max_xp)``.

    ``max_xp`` of ``None`` marks the final, unbounded level.
    """

    name: str
    min_xp: int = Field(ge=0)
    max_xp: int | None = None

    def contains(self, total_xp: int) -> bool:
        if total_xp < self.min_xp:
            return False
        return self.max_xp is None or total_xp < self.max_xp


class LevelInfo(BaseModel):
    """Level lookup result for a cumulative XP total."""

    level: int  # 1-indexed position in the level table
    name: str
    current_xp: int
    xp_for_next_level: int | None  # None at the max level (unbounded)
    progress: int  # 0-100
    is_max_level: bool
    total_xp: int


class XPAward(BaseModel):
    """Outcome of adding XP to a running total."""

    previous_total: int
    new_total: int
    xp_awarded: int
    reason: str
    previous_level: int
    current_level: int
    level_name: str

    @property
    def leveled_up(self) -> bool:
        return self.current_level > self.previous_level
