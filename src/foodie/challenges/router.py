"""Daily challenge API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.auth.dependencies import get_current_user_id
from foodie.challenges.classifier import ClassifierClient
from foodie.challenges.schemas import (
    ChallengeHistoryResponse,
    ChallengeSubmissionResponse,
    SubmitChallengeRequest,
    TodayChallengeResponse,
)
from foodie.challenges.service import get_challenge_history, get_today_challenge, submit_challenge_photo
from foodie.dependencies import get_db

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


def get_classifier() -> ClassifierClient:
    return ClassifierClient.from_settings()


@router.get("/today", response_model=TodayChallengeResponse)
async def today_challenge_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Today's challenge for the caller, issued on first request."""
    return await get_today_challenge(db, user_id)


@router.post("/submit", response_model=ChallengeSubmissionResponse)
async def submit_challenge_endpoint(
    body: SubmitChallengeRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    classifier: ClassifierClient = Depends(get_classifier),
):
    """Classify an uploaded photo and score it against the challenge."""
    return await submit_challenge_photo(db, classifier, user_id, body.photo_url, body.challenge_id, body.photo_id)


@router.get("/history", response_model=ChallengeHistoryResponse)
async def challenge_history_endpoint(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await get_challenge_history(db, user_id)
