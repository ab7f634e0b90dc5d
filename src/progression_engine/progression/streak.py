"""Daily practice streak tracking.

Day boundaries are taken from the user's local calendar (``zoneinfo``), never
from a fixed UTC offset, so daylight-saving shifts cannot skip or repeat a day.
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from progression_engine.errors import StreakActionError
from progression_engine.models.streak import StreakPurchase, StreakResult, StreakState, StreakStatus

logger = structlog.get_logger()

PERFECT_HOURS = 12.0
AT_RISK_HOURS = 4.0

# Free weekly freeze bridges one or two missed days of a streak of 2+
FREEZE_COOLDOWN_DAYS = 7
AUTO_FREEZE_MAX_MISSED_DAYS = 2
AUTO_FREEZE_MIN_STREAK = 2

# Paid actions, priced in currency
STREAK_FREEZE_COST = 50
STREAK_REPAIR_COST = 100
FREEZE_WINDOW_HOURS = (24.0, 48.0)


def resolve_timezone(name: str | None) -> tzinfo:
    """Look up an IANA zone, falling back to UTC for unknown names."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown_timezone", timezone=name)
        return timezone.utc


def _as_aware(moment: datetime) -> datetime:
    # Naive timestamps are UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar date of ``moment`` as seen in ``tz``."""
    return _as_aware(moment).astimezone(tz).date()


def hours_until_day_end(now: datetime, tz: tzinfo) -> float:
    """Real hours left until the next local midnight in ``tz``."""
    local_now = _as_aware(now).astimezone(tz)
    midnight = datetime.combine(local_now.date() + timedelta(days=1), time.min, tzinfo=tz)
    # Subtract in UTC: same-tzinfo subtraction ignores DST offset changes
    remaining = midnight.astimezone(timezone.utc) - local_now.astimezone(timezone.utc)
    return remaining.total_seconds() / 3600


def streak_status(
    streak_days: int,
    now: datetime,
    tz: tzinfo,
    perfect_hours: float = PERFECT_HOURS,
    at_risk_hours: float = AT_RISK_HOURS,
) -> StreakStatus:
    """Derive the streak status from time left in the local day.

    Args:
        streak_days: Current streak length.
        now: Current instant.
        tz: User's timezone.
        perfect_hours: More than this many hours left counts as perfect.
        at_risk_hours: Fewer than this many hours left counts as at risk.

    Returns:
        StreakStatus.
    """
    if streak_days <= 0:
        return StreakStatus.BROKEN
    hours_left = hours_until_day_end(now, tz)
    if hours_left > perfect_hours:
        return StreakStatus.PERFECT
    if hours_left < at_risk_hours:
        return StreakStatus.AT_RISK
    return StreakStatus.ACTIVE


def _day_gap(state: StreakState, now: datetime, tz: tzinfo) -> int | None:
    if state.last_practice_date is None:
        return None
    return (local_date(now, tz) - local_date(state.last_practice_date, tz)).days


def freeze_available(state: StreakState, now: datetime) -> bool:
    """Whether the free weekly freeze can be used at ``now``."""
    if state.last_freeze_used_date is None:
        return True
    tz = resolve_timezone(state.timezone)
    since = local_date(now, tz) - local_date(state.last_freeze_used_date, tz)
    return since.days >= FREEZE_COOLDOWN_DAYS


def _can_auto_freeze(state: StreakState, gap: int, now: datetime) -> bool:
    missed = gap - 1
    return (
        1 <= missed <= AUTO_FREEZE_MAX_MISSED_DAYS
        and state.current_streak_days >= AUTO_FREEZE_MIN_STREAK
        and freeze_available(state, now)
    )


def compute_streak(
    state: StreakState,
    now: datetime,
    *,
    perfect_hours: float = PERFECT_HOURS,
    at_risk_hours: float = AT_RISK_HOURS,
    auto_freeze: bool = False,
) -> StreakResult:
    """Compute the streak after a practice event at ``now``.

    Args:
        state: Streak record before the event.
        now: Time of the practice event.
        perfect_hours: Status threshold, see streak_status.
        at_risk_hours: Status threshold, see streak_status.
        auto_freeze: Spend the free weekly freeze to bridge one or two
            missed days instead of resetting.

    Returns:
        StreakResult with the new streak length and flags.
    """
    tz = resolve_timezone(state.timezone)
    gap = _day_gap(state, now, tz)
    current = state.current_streak_days
    should_reset = False
    is_new = False
    frozen = False

    if gap is None:
        streak = 1
        is_new = True
    elif gap == 0:
        streak = current
    elif gap == 1:
        streak = current + 1
    elif gap > 1 and auto_freeze and _can_auto_freeze(state, gap, now):
        streak = current + 1
        frozen = True
        logger.info("streak_freeze_used", previous_streak=current, missed_days=gap - 1)
    else:
        # Also covers a last practice later than now on the local calendar
        streak = 1
        should_reset = True
        is_new = True
        logger.info("streak_reset", previous_streak=current, gap_days=gap)

    return StreakResult(
        streak_days=streak,
        status=streak_status(streak, now, tz, perfect_hours, at_risk_hours),
        should_reset=should_reset,
        is_new_streak=is_new,
        saved_by_freeze=frozen,
    )


def apply_practice(
    state: StreakState,
    now: datetime,
    *,
    perfect_hours: float = PERFECT_HOURS,
    at_risk_hours: float = AT_RISK_HOURS,
    auto_freeze: bool = False,
) -> tuple[StreakState, StreakResult]:
    """Compute the streak for a practice event and build the record to persist.

    The stored last practice date never moves backwards, so a skewed clock
    cannot make a later practice on the same day count twice.
    """
    result = compute_streak(
        state,
        now,
        perfect_hours=perfect_hours,
        at_risk_hours=at_risk_hours,
        auto_freeze=auto_freeze,
    )
    last = now
    if state.last_practice_date is not None:
        last = max(_as_aware(state.last_practice_date), _as_aware(now))
    update = {
        "last_practice_date": last,
        "current_streak_days": result.streak_days,
        "longest_streak_days": max(state.longest_streak_days, result.streak_days),
    }
    if result.saved_by_freeze:
        update["last_freeze_used_date"] = now
    return state.model_copy(update=update), result


def peek_streak(
    state: StreakState,
    now: datetime,
    *,
    perfect_hours: float = PERFECT_HOURS,
    at_risk_hours: float = AT_RISK_HOURS,
    auto_freeze: bool = False,
) -> StreakResult:
    """Streak as it should be displayed at ``now``, without a practice event.

    A streak last extended today or yesterday is still alive; anything older
    is shown as broken (``should_reset`` tells the caller the next practice
    starts over) unless ``auto_freeze`` would still bridge the gap today.
    """
    tz = resolve_timezone(state.timezone)
    gap = _day_gap(state, now, tz)
    if gap is None:
        return StreakResult(
            streak_days=0,
            status=StreakStatus.BROKEN,
            should_reset=False,
            is_new_streak=False,
        )
    frozen = gap >= 2 and auto_freeze and _can_auto_freeze(state, gap, now)
    if gap >= 2 and not frozen:
        return StreakResult(
            streak_days=0,
            status=StreakStatus.BROKEN,
            should_reset=True,
            is_new_streak=False,
        )
    streak = state.current_streak_days
    return StreakResult(
        streak_days=streak,
        status=streak_status(streak, now, tz, perfect_hours, at_risk_hours),
        should_reset=False,
        is_new_streak=False,
        saved_by_freeze=frozen,
    )


def _hours_since_practice(state: StreakState, now: datetime) -> float | None:
    if state.last_practice_date is None:
        return None
    elapsed = _as_aware(now) - _as_aware(state.last_practice_date)
    return elapsed.total_seconds() / 3600


def freeze_streak(state: StreakState, currency: int, now: datetime) -> StreakPurchase:
    """Buy one extra day for an at-risk streak.

    Allowed only 24 to 48 hours after the last practice. Moves the last
    practice date forward by a day.

    Raises:
        StreakActionError: Streak not at risk, or not enough currency.
    """
    hours = _hours_since_practice(state, now)
    if hours is None or not FREEZE_WINDOW_HOURS[0] < hours <= FREEZE_WINDOW_HOURS[1]:
        raise StreakActionError("streak is not at risk")
    if currency < STREAK_FREEZE_COST:
        raise StreakActionError(f"streak freeze costs {STREAK_FREEZE_COST}, have {currency}")

    new_state = state.model_copy(update={
        "last_practice_date": _as_aware(state.last_practice_date) + timedelta(hours=24),
    })
    logger.info("streak_frozen", streak_days=state.current_streak_days, cost=STREAK_FREEZE_COST)
    return StreakPurchase(
        state=new_state,
        cost=STREAK_FREEZE_COST,
        remaining_currency=currency - STREAK_FREEZE_COST,
    )


def repair_streak(state: StreakState, currency: int, now: datetime) -> StreakPurchase:
    """Restore a lost streak so the next practice continues it.

    Allowed only more than 48 hours after the last practice and while a
    streak is still recorded. Sets the last practice date to 24 hours ago.

    Raises:
        StreakActionError: Streak not lost, nothing to repair, or not enough
            currency.
    """
    hours = _hours_since_practice(state, now)
    if hours is None or hours <= FREEZE_WINDOW_HOURS[1]:
        raise StreakActionError("streak is not lost")
    if state.current_streak_days == 0:
        raise StreakActionError("no streak to repair")
    if currency < STREAK_REPAIR_COST:
        raise StreakActionError(f"streak repair costs {STREAK_REPAIR_COST}, have {currency}")

    new_state = state.model_copy(update={
        "last_practice_date": _as_aware(now) - timedelta(hours=24),
    })
    logger.info("streak_repaired", streak_days=state.current_streak_days, cost=STREAK_REPAIR_COST)
    return StreakPurchase(
        state=new_state,
        cost=STREAK_REPAIR_COST,
        remaining_currency=currency - STREAK_REPAIR_COST,
    )


class StreakTracker:
    """Stateful wrapper around the streak functions for one user.

    Args:
        state: Existing streak record, or None to start fresh.
        timezone_name: Timezone for a fresh record.
        perfect_hours: Status threshold.
        at_risk_hours: Status threshold.
        auto_freeze: Use the free weekly freeze on short gaps.
    """

    def __init__(
        self,
        state: StreakState | None = None,
        timezone_name: str = "UTC",
        perfect_hours: float = PERFECT_HOURS,
        at_risk_hours: float = AT_RISK_HOURS,
        auto_freeze: bool = False,
    ) -> None:
        self._state = state or StreakState(timezone=timezone_name)
        self._perfect_hours = perfect_hours
        self._at_risk_hours = at_risk_hours
        self._auto_freeze = auto_freeze

    def record_event(self, now: datetime) -> StreakResult:
        """Register a qualifying practice event."""
        self._state, result = apply_practice(
            self._state,
            now,
            perfect_hours=self._perfect_hours,
            at_risk_hours=self._at_risk_hours,
            auto_freeze=self._auto_freeze,
        )
        return result

    def get_state(self) -> StreakState:
        return self._state.model_copy()

    def status(self, now: datetime) -> StreakResult:
        return peek_streak(
            self._state,
            now,
            perfect_hours=self._perfect_hours,
            at_risk_hours=self._at_risk_hours,
            auto_freeze=self._auto_freeze,
        )
