"""Achievement catalog and idempotent unlocking."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.db.models import Achievement, UserStreak

logger = logging.getLogger(__name__)

# code -> (name, description)
ACHIEVEMENTS: dict[str, tuple[str, str]] = {
    "first-challenge": ("First Challenge", "Completed your first daily challenge"),
    "streak-7": ("7-Day Streak", "Completed challenges for 7 consecutive days"),
    "streak-30": ("30-Day Streak", "Completed challenges for 30 consecutive days"),
}

# --- Streak achievement thresholds (exact streak length) ---
STREAK_ACHIEVEMENT_MAP = {
    7: "streak-7",
    30: "streak-30",
}


async def get_achievement(db: AsyncSession, user_id: int, code: str) -> Achievement | None:
    result = await db.execute(
        select(Achievement).where(
            Achievement.user_id == user_id,
            Achievement.achievement_code == code,
        )
    )
    return result.scalar_one_or_none()


async def list_unlocked(db: AsyncSession, user_id: int) -> list[Achievement]:
    result = await db.execute(
        select(Achievement)
        .where(Achievement.user_id == user_id, Achievement.is_unlocked.is_(True))
        .order_by(Achievement.unlocked_at)
    )
    return list(result.scalars().all())


async def unlock_achievement(db: AsyncSession, user_id: int, code: str) -> Achievement | None:
    """Unlock an achievement for a user and commit.

    Returns the achievement if this call unlocked it, None if it was already
    unlocked (including when a concurrent unlock won the insert).
    """
    name, description = ACHIEVEMENTS[code]
    now = datetime.now(timezone.utc)

    achievement = await get_achievement(db, user_id, code)
    if achievement is not None:
        if achievement.is_unlocked:
            return None
        achievement.is_unlocked = True
        achievement.unlocked_at = now
        await db.commit()
        return achievement

    achievement = Achievement(
        user_id=user_id,
        achievement_code=code,
        name=name,
        description=description,
        is_unlocked=True,
        unlocked_at=now,
    )
    db.add(achievement)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return None  # Race condition: already unlocked

    logger.info("Achievement %s unlocked for user %d", code, user_id)
    return achievement


async def check_achievements(db: AsyncSession, user_id: int, streak: UserStreak) -> list[str]:
    """Unlock whatever the updated streak qualifies for. Returns the names unlocked."""
    codes: list[str] = []
    streak_code = STREAK_ACHIEVEMENT_MAP.get(streak.current_streak)
    if streak_code is not None:
        codes.append(streak_code)
    if streak.total_completed == 1:
        codes.append("first-challenge")

    unlocked: list[str] = []
    for code in codes:
        achievement = await unlock_achievement(db, user_id, code)
        if achievement is not None:
            unlocked.append(achievement.name)
    return unlocked
