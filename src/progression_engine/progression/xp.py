"""XP awards and level progression."""

import math

import structlog

from progression_engine.errors import LevelTableError
from progression_engine.models.level import Level, LevelInfo, XPAward

logger = structlog.get_logger()

# XP granted per activity
XP_AWARDS: dict[str, int] = {
    # Core learning
    "LESSON_COMPLETE": 10,
    "PRACTICE_SESSION": 5,
    "QUIZ_PERFECT": 15,
    # Daily goals
    "DAILY_GOAL_COMPLETE": 10,
    "DAILY_GOAL_EXCEEDED_2X": 20,
    # Streaks
    "STREAK_7_DAY": 20,
    "STREAK_30_DAY": 50,
    "STREAK_100_DAY": 100,
    # Social
    "REFERRAL": 25,
    # Misc
    "FIRST_ACTION_TODAY": 5,
    "TRANSLATION_USED": 2,
    "NEWS_ARTICLE_READ": 5,
}

DEFAULT_LEVELS: tuple[Level, ...] = (
    Level(name="Beginner", min_xp=0, max_xp=100),
    Level(name="Elementary", min_xp=100, max_xp=300),
    Level(name="Intermediate", min_xp=300, max_xp=700),
    Level(name="Advanced", min_xp=700, max_xp=1500),
    Level(name="Fluent", min_xp=1500, max_xp=None),
)

# Checked from the largest milestone down; exact-day matches only
STREAK_MILESTONES: tuple[tuple[int, str], ...] = (
    (100, "STREAK_100_DAY"),
    (30, "STREAK_30_DAY"),
    (7, "STREAK_7_DAY"),
)


def validate_level_table(levels) -> None:
    """Check that a level table is contiguous and ends unbounded.

    Args:
        levels: Sequence of Level, ascending by min_xp.

    Raises:
        LevelTableError: If the table breaks any ordering invariant.
    """
    if not levels:
        raise LevelTableError("level table is empty")
    if levels[0].min_xp != 0:
        raise LevelTableError(f"first level must start at 0 XP, got {levels[0].min_xp}")
    for current, following in zip(levels, levels[1:]):
        if current.max_xp is None:
            raise LevelTableError(f"only the final level may be unbounded: {current.name}")
        if current.max_xp <= current.min_xp:
            raise LevelTableError(f"level {current.name} has an empty XP range")
        if current.max_xp != following.min_xp:
            raise LevelTableError(
                f"gap or overlap between {current.name} and {following.name}"
            )
    if levels[-1].max_xp is not None:
        raise LevelTableError(f"final level {levels[-1].name} must be unbounded")


def _round_percent(value: float) -> int:
    # Half-up rounding; round() would round 0.5 to even
    return int(math.floor(value + 0.5))


def get_level_info(total_xp: int, levels=DEFAULT_LEVELS) -> LevelInfo:
    """Map cumulative XP to a level and intra-level progress.

    A total exactly on a boundary belongs to the higher level.

    Args:
        total_xp: Cumulative XP. Negative values are treated as 0.
        levels: Contiguous level table (see validate_level_table).

    Returns:
        LevelInfo for the level whose [min_xp, max_xp) contains total_xp.
    """
    if total_xp < 0:
        logger.debug("negative_xp_clamped", total_xp=total_xp)
        total_xp = 0

    index = len(levels) - 1
    for i, level in enumerate(levels):
        if level.contains(total_xp):
            index = i
            break

    level = levels[index]
    current_xp = total_xp - level.min_xp
    if level.max_xp is None:
        return LevelInfo(
            level=index + 1,
            name=level.name,
            current_xp=current_xp,
            xp_for_next_level=None,
            progress=100,
            is_max_level=True,
            total_xp=total_xp,
        )

    span = level.max_xp - level.min_xp
    progress = max(0, min(100, _round_percent(current_xp / span * 100)))
    return LevelInfo(
        level=index + 1,
        name=level.name,
        current_xp=current_xp,
        xp_for_next_level=span,
        progress=progress,
        is_max_level=False,
        total_xp=total_xp,
    )


def award_xp(total_xp: int, amount: int, reason: str, levels=DEFAULT_LEVELS) -> XPAward:
    """Add XP to a running total and report any level change.

    Args:
        total_xp: Current cumulative XP.
        amount: XP to add. Negative amounts are treated as 0.
        reason: Award reason, usually a key of XP_AWARDS.
        levels: Level table.

    Returns:
        XPAward with before/after totals and levels.
    """
    total_xp = max(0, total_xp)
    amount = max(0, amount)
    before = get_level_info(total_xp, levels)
    after = get_level_info(total_xp + amount, levels)

    award = XPAward(
        previous_total=total_xp,
        new_total=total_xp + amount,
        xp_awarded=amount,
        reason=reason,
        previous_level=before.level,
        current_level=after.level,
        level_name=after.name,
    )
    if award.leveled_up:
        logger.info(
            "level_up",
            previous_level=before.level,
            new_level=after.level,
            level_name=after.name,
            reason=reason,
        )
    return award


def streak_milestone_bonus(streak_days: int) -> tuple[int, str] | None:
    """Bonus XP for hitting exactly 7, 30 or 100 streak days."""
    for days, reason in STREAK_MILESTONES:
        if streak_days == days:
            return XP_AWARDS[reason], reason
    return None


def daily_goal_bonus(
    previous_today_xp: int, today_xp: int, daily_goal_xp: int
) -> tuple[int, str] | None:
    """Bonus XP when today's XP crosses the daily goal or twice the goal.

    Pays only for the threshold crossed by this change, so repeated calls
    after the goal is met do not pay again.

    Args:
        previous_today_xp: XP earned today before the latest award.
        today_xp: XP earned today including the latest award.
        daily_goal_xp: Daily goal; non-positive goals never pay out.

    Returns:
        (xp, reason) or None if no threshold was crossed.
    """
    if daily_goal_xp <= 0:
        return None
    doubled = daily_goal_xp * 2
    if previous_today_xp < doubled <= today_xp:
        return XP_AWARDS["DAILY_GOAL_EXCEEDED_2X"], "DAILY_GOAL_EXCEEDED_2X"
    if previous_today_xp < daily_goal_xp <= today_xp:
        return XP_AWARDS["DAILY_GOAL_COMPLETE"], "DAILY_GOAL_COMPLETE"
    return None
