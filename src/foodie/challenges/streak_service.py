"""Daily streak tracking for challenge completions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.db.models import UserStreak

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakTransition:
    current_streak: int
    highest_streak: int
    last_completed_at: date
    increased: bool


def next_streak(
    current_streak: int,
    highest_streak: int,
    last_completed_at: date | None,
    today: date,
) -> StreakTransition:
    """Apply one successful completion on ``today``.

    Same day: unchanged. Day after the last completion: +1. Anything else
    (gap or first ever): back to 1. The highest streak follows the current one.
    """
    if last_completed_at == today:
        return StreakTransition(current_streak, highest_streak, today, increased=False)

    if last_completed_at is not None and last_completed_at == today - timedelta(days=1):
        current_streak += 1
    else:
        current_streak = 1

    return StreakTransition(
        current_streak=current_streak,
        highest_streak=max(highest_streak, current_streak),
        last_completed_at=today,
        increased=True,
    )


async def find_user_streak(db: AsyncSession, user_id: int) -> UserStreak | None:
    result = await db.execute(select(UserStreak).where(UserStreak.user_id == user_id))
    return result.scalar_one_or_none()


async def get_user_streak(db: AsyncSession, user_id: int) -> UserStreak:
    """Get or create the streak row for a user."""
    streak = await find_user_streak(db, user_id)
    if streak is None:
        streak = UserStreak(
            user_id=user_id,
            current_streak=0,
            highest_streak=0,
            total_completed=0,
            total_attempted=0,
            last_completed_at=None,
        )
        db.add(streak)
        await db.flush()
    return streak


async def record_success(db: AsyncSession, user_id: int, today: date) -> tuple[UserStreak, bool]:
    """Credit a completed challenge. Returns ``(streak, streak_increased)``.

    Every success counts toward ``total_completed``, even a second one on the
    same day; the streak itself moves at most once per day.
    """
    streak = await get_user_streak(db, user_id)
    streak.total_completed += 1

    transition = next_streak(streak.current_streak, streak.highest_streak, streak.last_completed_at, today)
    streak.current_streak = transition.current_streak
    streak.highest_streak = transition.highest_streak
    streak.last_completed_at = transition.last_completed_at
    await db.flush()

    if transition.increased:
        logger.info("Streak for user %d is now %d", user_id, streak.current_streak)
    return streak, transition.increased


async def record_attempt(db: AsyncSession, user_id: int) -> UserStreak:
    """Count a failed submission. The streak is untouched."""
    streak = await get_user_streak(db, user_id)
    streak.total_attempted += 1
    await db.flush()
    return streak
