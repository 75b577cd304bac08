"""Daily photo challenge lifecycle.

Per user and calendar day: issued -> submitted -> completed, or attempted and
left open for another try. A completed challenge is final; later submissions
replay the stored result without touching the streak.

The completion write is a conditional update on ``is_completed = false`` so
two concurrent submissions cannot both credit the streak. The loser replays
the winner's result.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.challenges.achievement_service import check_achievements, list_unlocked
from foodie.challenges.classes import random_class
from foodie.challenges.classifier import ClassifierClient, Prediction
from foodie.challenges.schemas import (
    AchievementItem,
    ChallengeHistoryItem,
    ChallengeHistoryResponse,
    ChallengeSubmissionResponse,
    TodayChallengeResponse,
)
from foodie.challenges.streak_service import find_user_streak, record_attempt, record_success
from foodie.config import get_settings
from foodie.db.models import Challenge
from foodie.exceptions import NotFoundError

logger = logging.getLogger(__name__)

CHALLENGE_TITLE = "Today's Challenge"
MSG_PASSED = "Congratulations! Your photo passed the challenge!"
MSG_FAILED = "The image does not match the challenge or score is too low."
MSG_ALREADY_COMPLETED = "You have already completed this challenge!"


def challenge_day(now: datetime | None = None, tz_name: str | None = None) -> date:
    """Calendar day used for issuing challenges and counting streaks."""
    tz = ZoneInfo(tz_name or get_settings().challenge_timezone)
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(tz).date()


def next_midnight(day: date, tz_name: str | None = None) -> datetime:
    """Start of the day after ``day`` in the challenge timezone, as UTC."""
    tz = ZoneInfo(tz_name or get_settings().challenge_timezone)
    return datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)


def describe(target_class: str) -> str:
    return f"Take your best photo of {target_class}"


async def _current_streak(db: AsyncSession, user_id: int) -> int:
    streak = await find_user_streak(db, user_id)
    return streak.current_streak if streak else 0


async def _find_for_day(db: AsyncSession, user_id: int, day: date) -> Challenge | None:
    result = await db.execute(
        select(Challenge).where(Challenge.user_id == user_id, Challenge.challenge_date == day)
    )
    return result.scalar_one_or_none()


async def _first_issued_for_day(db: AsyncSession, day: date) -> Challenge | None:
    result = await db.execute(
        select(Challenge)
        .where(Challenge.challenge_date == day)
        .order_by(Challenge.created_at.asc(), Challenge.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_or_issue_challenge(db: AsyncSession, user_id: int, day: date | None = None) -> Challenge:
    """Return the user's challenge for ``day``, issuing it if needed.

    A new challenge copies the class of the day's first issued challenge so
    everybody gets the same dish; the first challenge of the day picks a
    random class.
    """
    day = day or challenge_day()
    challenge = await _find_for_day(db, user_id, day)
    if challenge is not None:
        return challenge

    template = await _first_issued_for_day(db, day)
    if template is not None:
        target_class, description = template.target_class, template.description
    else:
        _, target_class = random_class()
        description = describe(target_class)

    challenge = Challenge(
        user_id=user_id,
        challenge_date=day,
        target_class=target_class,
        description=description,
        is_completed=False,
        expires_at=next_midnight(day),
    )
    db.add(challenge)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent request issued it first.
        await db.rollback()
        challenge = await _find_for_day(db, user_id, day)
        if challenge is None:
            raise
        return challenge

    logger.info("Issued %s challenge for user %d on %s", target_class, user_id, day)
    return challenge


async def get_today_challenge(db: AsyncSession, user_id: int, day: date | None = None) -> TodayChallengeResponse:
    challenge = await get_or_issue_challenge(db, user_id, day)
    return TodayChallengeResponse(
        id=challenge.id,
        title=CHALLENGE_TITLE,
        description=challenge.description,
        target_class=challenge.target_class,
        created_at=challenge.created_at,
        expires_at=challenge.expires_at,
        is_completed=challenge.is_completed,
        current_streak=await _current_streak(db, user_id),
    )


async def get_challenge_by_id(db: AsyncSession, challenge_id: str, user_id: int | None = None) -> Challenge:
    query = select(Challenge).where(Challenge.id == challenge_id)
    if user_id is not None:
        query = query.where(Challenge.user_id == user_id)
    challenge = (await db.execute(query)).scalar_one_or_none()
    if challenge is None:
        raise NotFoundError(f"Challenge with ID {challenge_id} not found")
    return challenge


async def _replay(db: AsyncSession, challenge: Challenge) -> ChallengeSubmissionResponse:
    return ChallengeSubmissionResponse(
        success=True,
        message=MSG_ALREADY_COMPLETED,
        score=challenge.score or 0.0,
        is_match=True,
        detected_class=challenge.detected_class or "",
        streak_increased=False,
        current_streak=await _current_streak(db, challenge.user_id),
        unlocked_achievements=[],
    )


async def submit_challenge_with_prediction(
    db: AsyncSession,
    user_id: int,
    prediction: Prediction,
    challenge_id: str | None = None,
    photo_id: str | None = None,
    day: date | None = None,
    pass_score: float | None = None,
) -> ChallengeSubmissionResponse:
    """Score a classified photo against the user's challenge.

    Success needs the predicted class to equal the target class
    (case-insensitive) with a score of at least ``pass_score``.
    """
    day = day or challenge_day()
    if pass_score is None:
        pass_score = get_settings().challenge_pass_score

    if challenge_id is not None:
        challenge = await get_challenge_by_id(db, challenge_id, user_id)
    else:
        challenge = await get_or_issue_challenge(db, user_id, day)

    if challenge.is_completed:
        return await _replay(db, challenge)

    is_match = prediction.class_name.lower() == challenge.target_class.lower()
    success = is_match and prediction.score >= pass_score
    now = datetime.now(timezone.utc)

    values: dict = {
        "score": prediction.score,
        "detected_class": prediction.class_name,
        "photo_id": photo_id,
    }
    if success:
        values.update(is_completed=True, completed_at=now)

    result = await db.execute(
        update(Challenge)
        .where(Challenge.id == challenge.id, Challenge.is_completed.is_(False))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # Another submission completed it between our read and write.
        await db.rollback()
        await db.refresh(challenge)
        return await _replay(db, challenge)

    streak_increased = False
    unlocked: list[str] = []
    if success:
        streak, streak_increased = await record_success(db, user_id, day)
        await db.commit()
        unlocked = await check_achievements(db, user_id, streak)
    else:
        await record_attempt(db, user_id)
        await db.commit()

    await db.refresh(challenge)
    logger.info(
        "Challenge %s submitted by user %d: %s %.2f (%s)",
        challenge.id,
        user_id,
        prediction.class_name,
        prediction.score,
        "passed" if success else "failed",
    )

    return ChallengeSubmissionResponse(
        success=success,
        message=MSG_PASSED if success else MSG_FAILED,
        score=prediction.score,
        is_match=is_match,
        detected_class=prediction.class_name,
        streak_increased=streak_increased,
        current_streak=await _current_streak(db, user_id),
        unlocked_achievements=unlocked,
    )


async def submit_challenge_photo(
    db: AsyncSession,
    classifier: ClassifierClient,
    user_id: int,
    photo_url: str,
    challenge_id: str | None = None,
    photo_id: str | None = None,
    day: date | None = None,
) -> ChallengeSubmissionResponse:
    """Classify the photo at ``photo_url`` and submit it.

    A completed challenge is replayed without calling the classifier.
    Classifier failures propagate as ExternalServiceError.
    """
    if challenge_id is not None:
        challenge = await get_challenge_by_id(db, challenge_id, user_id)
    else:
        challenge = await get_or_issue_challenge(db, user_id, day)
    if challenge.is_completed:
        return await _replay(db, challenge)

    prediction = await classifier.predict_url(photo_url)
    return await submit_challenge_with_prediction(
        db, user_id, prediction, challenge.id, photo_id or photo_url, day=day
    )


async def get_challenge_history(db: AsyncSession, user_id: int) -> ChallengeHistoryResponse:
    """Streak counters, unlocked achievements and every challenge, newest first."""
    streak = await find_user_streak(db, user_id)
    achievements = await list_unlocked(db, user_id)
    result = await db.execute(
        select(Challenge).where(Challenge.user_id == user_id).order_by(Challenge.created_at.desc())
    )

    return ChallengeHistoryResponse(
        current_streak=streak.current_streak if streak else 0,
        highest_streak=streak.highest_streak if streak else 0,
        total_completed=streak.total_completed if streak else 0,
        total_attempted=streak.total_attempted if streak else 0,
        achievements=[
            AchievementItem(
                id=a.achievement_code,
                name=a.name,
                description=a.description,
                unlocked_at=a.unlocked_at,
            )
            for a in achievements
        ],
        history=[
            ChallengeHistoryItem(
                id=c.id,
                description=c.description,
                target_class=c.target_class,
                created_at=c.created_at,
                is_completed=c.is_completed,
                completed_at=c.completed_at,
                score=c.score,
                photo_id=c.photo_id,
            )
            for c in result.scalars().all()
        ],
    )
