"""Pydantic schemas for challenge endpoints."""

from __future__ import annotations

from pydantic import Field

from foodie.schemas import CamelModel, UtcDatetime


class SubmitChallengeRequest(CamelModel):
    photo_url: str = Field(..., min_length=1)
    challenge_id: str | None = None
    photo_id: str | None = None


class TodayChallengeResponse(CamelModel):
    id: str
    title: str
    description: str
    target_class: str = Field(..., alias="class")
    created_at: UtcDatetime
    expires_at: UtcDatetime
    is_completed: bool
    current_streak: int


class ChallengeSubmissionResponse(CamelModel):
    success: bool
    message: str
    score: float
    is_match: bool
    detected_class: str
    streak_increased: bool
    current_streak: int
    unlocked_achievements: list[str] = []


class AchievementItem(CamelModel):
    id: str
    name: str
    description: str
    unlocked_at: UtcDatetime | None = None


class ChallengeHistoryItem(CamelModel):
    id: str
    description: str
    target_class: str = Field(..., alias="class")
    created_at: UtcDatetime
    is_completed: bool
    completed_at: UtcDatetime | None = None
    score: float | None = None
    photo_id: str | None = None


class ChallengeHistoryResponse(CamelModel):
    current_streak: int = 0
    highest_streak: int = 0
    total_completed: int = 0
    total_attempted: int = 0
    achievements: list[AchievementItem] = []
    history: list[ChallengeHistoryItem] = []
