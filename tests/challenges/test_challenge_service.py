"""Tests for the daily challenge lifecycle, streaks and achievements."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import update

from foodie.challenges import service
from foodie.challenges.achievement_service import list_unlocked, unlock_achievement
from foodie.challenges.classifier import Prediction
from foodie.challenges.streak_service import find_user_streak
from foodie.db.models import Challenge
from foodie.exceptions import ExternalServiceError, NotFoundError

DAY = date(2024, 5, 1)

BANH_MI_82 = Prediction(class_name="Banh mi", class_id=9, score=82.0)
BANH_MI_55 = Prediction(class_name="Banh mi", class_id=9, score=55.0)
PHO_95 = Prediction(class_name="Pho", class_id=28, score=95.0)


@pytest.fixture(autouse=True)
def banh_mi_of_the_day(monkeypatch):
    """The first challenge of any day targets Banh mi; later picks would be Pho."""
    picks = iter([(9, "Banh mi")])
    monkeypatch.setattr(service, "random_class", lambda: next(picks, (28, "Pho")))


class TestDayBoundaries:
    def test_challenge_day_uses_timezone(self) -> None:
        late_evening_utc = datetime(2024, 1, 1, 23, 30, tzinfo=timezone.utc)
        assert service.challenge_day(late_evening_utc, "UTC") == date(2024, 1, 1)
        assert service.challenge_day(late_evening_utc, "Asia/Ho_Chi_Minh") == date(2024, 1, 2)

    def test_next_midnight(self) -> None:
        assert service.next_midnight(date(2024, 1, 2), "Asia/Ho_Chi_Minh") == datetime(
            2024, 1, 2, 17, 0, tzinfo=timezone.utc
        )
        assert service.next_midnight(date(2024, 1, 2), "UTC") == datetime(2024, 1, 3, tzinfo=timezone.utc)


class TestIssue:
    @pytest.mark.asyncio
    async def test_issued_once_per_day(self, db_session, users) -> None:
        first = await service.get_or_issue_challenge(db_session, 1, DAY)
        again = await service.get_or_issue_challenge(db_session, 1, DAY)

        assert again.id == first.id
        assert first.target_class == "Banh mi"
        assert first.description == "Take your best photo of Banh mi"
        assert first.is_completed is False

    @pytest.mark.asyncio
    async def test_everyone_gets_the_same_dish(self, db_session, users) -> None:
        mine = await service.get_or_issue_challenge(db_session, 1, DAY)
        theirs = await service.get_or_issue_challenge(db_session, 2, DAY)

        assert theirs.id != mine.id
        assert theirs.target_class == mine.target_class == "Banh mi"

    @pytest.mark.asyncio
    async def test_new_day_new_pick(self, db_session, users) -> None:
        await service.get_or_issue_challenge(db_session, 1, DAY)
        tomorrow = await service.get_or_issue_challenge(db_session, 1, DAY + timedelta(days=1))
        assert tomorrow.target_class == "Pho"

    @pytest.mark.asyncio
    async def test_today_response(self, db_session, users) -> None:
        today = await service.get_today_challenge(db_session, 1, DAY)

        assert today.title == "Today's Challenge"
        assert today.target_class == "Banh mi"
        assert today.current_streak == 0
        assert today.expires_at == datetime(2024, 5, 2, tzinfo=timezone.utc)
        assert today.model_dump(by_alias=True)["class"] == "Banh mi"


class TestSubmit:
    @pytest.mark.asyncio
    async def test_matching_photo_passes(self, db_session, users) -> None:
        result = await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_82, photo_id="p1", day=DAY)

        assert result.success is True
        assert result.is_match is True
        assert result.score == 82.0
        assert result.detected_class == "Banh mi"
        assert result.streak_increased is True
        assert result.current_streak == 1
        assert result.unlocked_achievements == ["First Challenge"]

        challenge = await service.get_or_issue_challenge(db_session, 1, DAY)
        assert challenge.is_completed is True
        assert challenge.completed_at is not None
        assert challenge.photo_id == "p1"
        streak = await find_user_streak(db_session, 1)
        assert (streak.current_streak, streak.total_completed, streak.total_attempted) == (1, 1, 0)

    @pytest.mark.asyncio
    async def test_low_score_fails(self, db_session, users) -> None:
        result = await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_55, day=DAY)

        assert result.success is False
        assert result.is_match is True
        assert result.message == service.MSG_FAILED
        assert result.streak_increased is False
        streak = await find_user_streak(db_session, 1)
        assert (streak.current_streak, streak.total_attempted) == (0, 1)
        challenge = await service.get_or_issue_challenge(db_session, 1, DAY)
        assert challenge.is_completed is False
        assert challenge.score == 55.0

    @pytest.mark.asyncio
    async def test_wrong_dish_fails(self, db_session, users) -> None:
        result = await service.submit_challenge_with_prediction(db_session, 1, PHO_95, day=DAY)
        assert result.success is False
        assert result.is_match is False
        assert result.detected_class == "Pho"

    @pytest.mark.asyncio
    async def test_class_match_is_case_insensitive(self, db_session, users) -> None:
        shouting = Prediction(class_name="BANH MI", class_id=9, score=90.0)
        result = await service.submit_challenge_with_prediction(db_session, 1, shouting, day=DAY)
        assert result.success is True

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, db_session, users) -> None:
        await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_55, day=DAY)
        result = await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_82, day=DAY)

        assert result.success is True
        streak = await find_user_streak(db_session, 1)
        assert (streak.current_streak, streak.total_completed, streak.total_attempted) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_completed_challenge_replays(self, db_session, users) -> None:
        await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_82, day=DAY)

        replay = await service.submit_challenge_with_prediction(db_session, 1, PHO_95, day=DAY)

        assert replay.success is True
        assert replay.message == service.MSG_ALREADY_COMPLETED
        assert replay.score == 82.0
        assert replay.detected_class == "Banh mi"
        assert replay.streak_increased is False
        assert replay.current_streak == 1
        assert replay.unlocked_achievements == []
        streak = await find_user_streak(db_session, 1)
        assert streak.total_completed == 1

    @pytest.mark.asyncio
    async def test_concurrent_completion_replays(self, db_session, session_factory, users) -> None:
        challenge = await service.get_or_issue_challenge(db_session, 1, DAY)
        async with session_factory() as other:
            await other.execute(
                update(Challenge)
                .where(Challenge.id == challenge.id)
                .values(is_completed=True, score=91.0, detected_class="Banh mi")
            )
            await other.commit()

        result = await service.submit_challenge_with_prediction(
            db_session, 1, BANH_MI_82, challenge_id=challenge.id, day=DAY
        )

        assert result.message == service.MSG_ALREADY_COMPLETED
        assert result.score == 91.0
        assert result.streak_increased is False
        assert await find_user_streak(db_session, 1) is None

    @pytest.mark.asyncio
    async def test_foreign_challenge_not_found(self, db_session, users) -> None:
        theirs = await service.get_or_issue_challenge(db_session, 2, DAY)
        with pytest.raises(NotFoundError):
            await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_82, challenge_id=theirs.id, day=DAY)


class TestStreaksAndAchievements:
    @pytest.mark.asyncio
    async def test_consecutive_days_build_streak(self, db_session, users) -> None:
        results = []
        for offset in range(3):
            day = DAY + timedelta(days=offset)
            challenge = await service.get_or_issue_challenge(db_session, 1, day)
            prediction = Prediction(class_name=challenge.target_class, class_id=0, score=80.0)
            results.append(await service.submit_challenge_with_prediction(db_session, 1, prediction, day=day))

        assert [r.current_streak for r in results] == [1, 2, 3]
        assert all(r.streak_increased for r in results)

    @pytest.mark.asyncio
    async def test_gap_resets_streak(self, db_session, users) -> None:
        await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_82, day=DAY)
        later = DAY + timedelta(days=3)
        challenge = await service.get_or_issue_challenge(db_session, 1, later)
        prediction = Prediction(class_name=challenge.target_class, class_id=0, score=80.0)

        result = await service.submit_challenge_with_prediction(db_session, 1, prediction, day=later)

        assert result.current_streak == 1
        streak = await find_user_streak(db_session, 1)
        assert streak.highest_streak == 1

    @pytest.mark.asyncio
    async def test_seven_day_streak_unlocks(self, db_session, users) -> None:
        unlocked: list[list[str]] = []
        for offset in range(7):
            day = DAY + timedelta(days=offset)
            challenge = await service.get_or_issue_challenge(db_session, 1, day)
            prediction = Prediction(class_name=challenge.target_class, class_id=0, score=80.0)
            result = await service.submit_challenge_with_prediction(db_session, 1, prediction, day=day)
            unlocked.append(result.unlocked_achievements)

        assert unlocked[0] == ["First Challenge"]
        assert unlocked[1:6] == [[]] * 5
        assert unlocked[6] == ["7-Day Streak"]
        codes = [a.achievement_code for a in await list_unlocked(db_session, 1)]
        assert codes == ["first-challenge", "streak-7"]

    @pytest.mark.asyncio
    async def test_unlock_is_idempotent(self, db_session, users) -> None:
        assert await unlock_achievement(db_session, 1, "first-challenge") is not None
        assert await unlock_achievement(db_session, 1, "first-challenge") is None
        assert len(await list_unlocked(db_session, 1)) == 1


class TestSubmitPhoto:
    @pytest.mark.asyncio
    async def test_classifies_and_stores_url(self, db_session, users) -> None:
        classifier = AsyncMock()
        classifier.predict_url.return_value = BANH_MI_82

        result = await service.submit_challenge_photo(
            db_session, classifier, 1, "https://img.example.com/lunch.jpg", day=DAY
        )

        assert result.success is True
        classifier.predict_url.assert_awaited_once_with("https://img.example.com/lunch.jpg")
        challenge = await service.get_or_issue_challenge(db_session, 1, DAY)
        assert challenge.photo_id == "https://img.example.com/lunch.jpg"

    @pytest.mark.asyncio
    async def test_completed_challenge_skips_classifier(self, db_session, users) -> None:
        await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_82, day=DAY)
        classifier = AsyncMock()

        result = await service.submit_challenge_photo(db_session, classifier, 1, "https://x/y.jpg", day=DAY)

        assert result.message == service.MSG_ALREADY_COMPLETED
        classifier.predict_url.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_classifier_failure_propagates(self, db_session, users) -> None:
        classifier = AsyncMock()
        classifier.predict_url.side_effect = ExternalServiceError("down")

        with pytest.raises(ExternalServiceError):
            await service.submit_challenge_photo(db_session, classifier, 1, "https://x/y.jpg", day=DAY)

        assert await find_user_streak(db_session, 1) is None


class TestHistory:
    @pytest.mark.asyncio
    async def test_empty_history(self, db_session, users) -> None:
        history = await service.get_challenge_history(db_session, 1)
        assert history.current_streak == 0
        assert history.history == []
        assert history.achievements == []

    @pytest.mark.asyncio
    async def test_lists_challenges_newest_first(self, db_session, users) -> None:
        await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_82, day=DAY)
        await service.submit_challenge_with_prediction(db_session, 1, BANH_MI_55, day=DAY + timedelta(days=1))

        history = await service.get_challenge_history(db_session, 1)

        assert (history.current_streak, history.highest_streak) == (1, 1)
        assert (history.total_completed, history.total_attempted) == (1, 1)
        assert [h.is_completed for h in history.history] == [False, True]
        assert [h.target_class for h in history.history] == ["Pho", "Banh mi"]
        assert [a.id for a in history.achievements] == ["first-challenge"]
