"""Heart (lives) regeneration.

Hearts are recomputed on demand from elapsed time; there is no background timer.
"""

from datetime import datetime, timedelta, timezone

import structlog

from progression_engine.models.hearts import HeartState, HeartsResult

logger = structlog.get_logger()

REGEN_MINUTES = 30
MAX_HEARTS = 5


def _elapsed_minutes(since: datetime, until: datetime) -> int:
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    if until.tzinfo is None:
        until = until.replace(tzinfo=timezone.utc)
    seconds = (until - since).total_seconds()
    # Clock skew must never cost hearts
    return max(0, int(seconds // 60))


def regenerate_hearts(
    current_hearts: int,
    max_hearts: int,
    last_practice_date: datetime | None,
    current_date: datetime,
    regen_minutes: int = REGEN_MINUTES,
) -> HeartsResult:
    """Compute currently available hearts from elapsed time.

    Args:
        current_hearts: Hearts stored at ``last_practice_date``.
        max_hearts: Heart cap.
        last_practice_date: When the regeneration clock started.
        current_date: Now.
        regen_minutes: Minutes per regenerated heart.

    Returns:
        HeartsResult; hearts never decrease relative to ``current_hearts``.
    """
    current_hearts = max(0, min(current_hearts, max_hearts))
    if current_hearts >= max_hearts or last_practice_date is None:
        return HeartsResult(
            current_hearts=max_hearts,
            minutes_until_next_heart=0,
            is_fully_regenerated=True,
        )

    elapsed = _elapsed_minutes(last_practice_date, current_date)
    regenerated = elapsed // regen_minutes
    new_hearts = min(max_hearts, current_hearts + regenerated)
    if new_hearts >= max_hearts:
        wait = 0
    else:
        wait = regen_minutes - (elapsed % regen_minutes)

    return HeartsResult(
        current_hearts=new_hearts,
        minutes_until_next_heart=wait,
        is_fully_regenerated=new_hearts >= max_hearts,
    )


def refresh(
    state: HeartState,
    now: datetime,
    max_hearts: int = MAX_HEARTS,
    regen_minutes: int = REGEN_MINUTES,
) -> HeartState:
    """Fold elapsed regeneration into a stored heart record.

    The regeneration clock advances by whole regen periods only, so partial
    progress toward the next heart is kept.
    """
    result = regenerate_hearts(
        state.current_hearts, max_hearts, state.last_practice_date, now, regen_minutes
    )
    if result.is_fully_regenerated or state.last_practice_date is None:
        return HeartState(current_hearts=result.current_hearts, last_practice_date=None)

    gained = result.current_hearts - state.current_hearts
    if gained <= 0:
        return state.model_copy()
    clock = state.last_practice_date + timedelta(minutes=gained * regen_minutes)
    return HeartState(current_hearts=result.current_hearts, last_practice_date=clock)


def lose_heart(
    state: HeartState,
    now: datetime,
    max_hearts: int = MAX_HEARTS,
    regen_minutes: int = REGEN_MINUTES,
) -> HeartState:
    """Apply a wrong answer: regenerate first, then take one heart (floor 0)."""
    refreshed = refresh(state, now, max_hearts, regen_minutes)
    if refreshed.current_hearts <= 0:
        logger.debug("hearts_exhausted")
        return refreshed
    clock = refreshed.last_practice_date
    if clock is None:
        # Dropping from full starts the regeneration clock
        clock = now
    return HeartState(current_hearts=refreshed.current_hearts - 1, last_practice_date=clock)


def has_hearts(
    state: HeartState,
    now: datetime,
    max_hearts: int = MAX_HEARTS,
    regen_minutes: int = REGEN_MINUTES,
) -> bool:
    result = regenerate_hearts(
        state.current_hearts, max_hearts, state.last_practice_date, now, regen_minutes
    )
    return result.current_hearts > 0
