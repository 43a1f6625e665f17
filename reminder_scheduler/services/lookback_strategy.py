"""Lookback strategy selection.

Classifies a user into bootstrap / transition / mature mode from the
number of prior weeks that produced schedules for them, and derives how
far back to look at organic readings and how much to trust them.

A new user has only noisy organic readings and relies on them fully. As
clean prompted readings accumulate, the weight of organic history decays
by 0.3 per week, and from the fourth scheduled week on only prompted
readings are used.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING

from reminder_scheduler.logging_config import get_logger

if TYPE_CHECKING:
    from reminder_scheduler.services.reminder_store import ReminderStore

logger = get_logger(__name__)

# Organic lookback for a user with no scheduled weeks
BOOTSTRAP_LOOKBACK_DAYS = 60

# Historical weight lost per completed scheduled week, and its floor
HISTORICAL_WEIGHT_DECAY_PER_WEEK = 0.3
MIN_TRANSITION_HISTORICAL_WEIGHT = 0.1

# Completed scheduled weeks at which organic history is dropped
MATURE_AFTER_WEEKS = 4


class LookbackMode(str, enum.Enum):
    """Data-maturity stage of a user."""

    BOOTSTRAP = "bootstrap"
    TRANSITION = "transition"
    MATURE = "mature"


@dataclass(frozen=True)
class LookbackStrategy:
    """Which data sources to use for one user and target week."""

    mode: LookbackMode
    scheduled_weeks_count: int
    use_scheduled_weeks: bool
    use_historical_weeks: bool
    historical_lookback_days: int
    historical_weight: float  # 0.0 - 1.0


def strategy_for_weeks(scheduled_weeks: int) -> LookbackStrategy:
    """Derive the lookback strategy from the completed-weeks count.

    Args:
        scheduled_weeks: Prior weeks with a completed run that produced at
            least one schedule for the user, counted before the target week.

    Returns:
        LookbackStrategy for the matching mode.
    """
    if scheduled_weeks <= 0:
        return LookbackStrategy(
            mode=LookbackMode.BOOTSTRAP,
            scheduled_weeks_count=0,
            use_scheduled_weeks=False,
            use_historical_weeks=True,
            historical_lookback_days=BOOTSTRAP_LOOKBACK_DAYS,
            historical_weight=1.0,
        )

    if scheduled_weeks < MATURE_AFTER_WEEKS:
        # Week 1 = 0.7, week 2 = 0.4, week 3 = 0.1
        historical_weight = max(
            MIN_TRANSITION_HISTORICAL_WEIGHT,
            1.0 - scheduled_weeks * HISTORICAL_WEIGHT_DECAY_PER_WEEK,
        )
        return LookbackStrategy(
            mode=LookbackMode.TRANSITION,
            scheduled_weeks_count=scheduled_weeks,
            use_scheduled_weeks=True,
            use_historical_weeks=True,
            historical_lookback_days=BOOTSTRAP_LOOKBACK_DAYS - scheduled_weeks * 7,
            historical_weight=historical_weight,
        )

    return LookbackStrategy(
        mode=LookbackMode.MATURE,
        scheduled_weeks_count=scheduled_weeks,
        use_scheduled_weeks=True,
        use_historical_weeks=False,
        historical_lookback_days=0,
        historical_weight=0.0,
    )


async def determine_lookback_strategy(
    store: "ReminderStore",
    user_id: uuid.UUID,
    target_monday: date,
) -> LookbackStrategy:
    """Count the user's completed scheduled weeks and classify them.

    Store failures propagate; the weekly run skips the user.
    """
    scheduled_weeks = await store.count_completed_weeks_before(user_id, target_monday)
    strategy = strategy_for_weeks(scheduled_weeks)

    logger.debug(
        "Determined lookback strategy",
        user_id=str(user_id),
        mode=strategy.mode.value,
        scheduled_weeks=scheduled_weeks,
        historical_weight=strategy.historical_weight,
    )
    return strategy
