"""Daily check-in streaks with automatic streak-saver protection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from earnloop.db.models import Streak
from earnloop.errors import AlreadyCompleted

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakTransition:
    """Outcome of one check-in applied to a streak."""

    current_streak: int
    longest_streak: int
    last_checkin_date: date
    streak_saver_count: int
    saver_used: bool = False
    reset: bool = False


def advance_streak(
    current_streak: int,
    longest_streak: int,
    last_checkin_date: date | None,
    streak_saver_count: int,
    today: date,
) -> StreakTransition:
    """Apply today's check-in.

    - first check-in ever: streak starts at 1
    - last check-in yesterday: streak + 1
    - gap of more than one day: consume a saver and continue, or reset to 1
    """
    if last_checkin_date is not None and last_checkin_date >= today:
        msg = "Already checked in today"
        raise AlreadyCompleted(msg, details={"last_checkin_date": last_checkin_date.isoformat()})

    saver_used = False
    reset = False
    if last_checkin_date is None:
        new_streak = 1
    elif (today - last_checkin_date).days == 1:
        new_streak = current_streak + 1
    elif streak_saver_count > 0:
        streak_saver_count -= 1
        saver_used = True
        new_streak = current_streak + 1
    else:
        new_streak = 1
        reset = True

    return StreakTransition(
        current_streak=new_streak,
        longest_streak=max(longest_streak, new_streak),
        last_checkin_date=today,
        streak_saver_count=streak_saver_count,
        saver_used=saver_used,
        reset=reset,
    )


async def lock_streak(db: AsyncSession, user_id: int) -> Streak:
    """Lock the user's streak row, creating an empty one if missing."""
    result = await db.execute(
        select(Streak)
        .where(Streak.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    streak = result.scalar_one_or_none()
    if streak is None:
        streak = Streak(user_id=user_id, current_streak=0, longest_streak=0, streak_saver_count=0)
        db.add(streak)
        await db.flush()
    return streak


async def apply_checkin(db: AsyncSession, streak: Streak, today: date, now: datetime) -> StreakTransition:
    """Run the state machine on a locked streak row and persist the result."""
    transition = advance_streak(
        streak.current_streak,
        streak.longest_streak,
        streak.last_checkin_date,
        streak.streak_saver_count,
        today,
    )
    streak.current_streak = transition.current_streak
    streak.longest_streak = transition.longest_streak
    streak.last_checkin_date = transition.last_checkin_date
    streak.streak_saver_count = transition.streak_saver_count
    streak.updated_at = now
    await db.flush()

    if transition.saver_used:
        logger.info("Streak saver consumed for user %d (streak %d)", streak.user_id, transition.current_streak)
    elif transition.reset:
        logger.info("Streak reset for user %d", streak.user_id)
    return transition
