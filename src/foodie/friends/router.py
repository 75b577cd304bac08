"""Friends graph API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.auth.dependencies import get_current_user_id
from foodie.cache.store import CacheStore
from foodie.dependencies import get_cache, get_db
from foodie.exceptions import NotFoundError
from foodie.friends.schemas import (
    CreateFriendRequest,
    FriendshipListResponse,
    FriendshipResponse,
    UpdateFriendRequest,
)
from foodie.friends.service import (
    accept_friend_request,
    create_friend_request,
    find_one_with_friend_id,
    get_friend_requests,
    list_friends,
    remove_friendship,
    update_friendship,
)

router = APIRouter(prefix="/api/v1/friends", tags=["Friends"])


@router.post("", response_model=FriendshipResponse, status_code=201)
async def create_friend_endpoint(
    body: CreateFriendRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Send a friend request by user id or email. Returns the existing edge if already requested."""
    edge = await create_friend_request(db, user_id, body.friend_id, body.email, body.is_blocked)
    return FriendshipResponse.model_validate(edge)


@router.get("", response_model=FriendshipListResponse)
async def list_friends_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    is_accepted: bool | None = Query(None, alias="isAccepted"),
    is_blocked: bool | None = Query(None, alias="isBlocked"),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    edges, total = await list_friends(db, user_id, page, limit, is_accepted, is_blocked)
    return FriendshipListResponse(
        data=[FriendshipResponse.model_validate(e) for e in edges], total=total, page=page, limit=limit
    )


@router.get("/requests", response_model=FriendshipListResponse)
async def friend_requests_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Pending requests addressed to the caller."""
    edges, total = await get_friend_requests(db, user_id, page, limit)
    return FriendshipListResponse(
        data=[FriendshipResponse.model_validate(e) for e in edges], total=total, page=page, limit=limit
    )


@router.post("/{requester_id}/accept", response_model=FriendshipResponse)
async def accept_friend_endpoint(
    requester_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    edge = await accept_friend_request(db, cache, user_id, requester_id)
    return FriendshipResponse.model_validate(edge)


@router.get("/with/{friend_id}", response_model=FriendshipResponse)
async def get_friendship_endpoint(
    friend_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """The edge between the caller and ``friend_id``, in either direction."""
    edge = await find_one_with_friend_id(db, user_id, friend_id)
    if edge is None:
        raise NotFoundError("Friendship not found")
    return FriendshipResponse.model_validate(edge)


@router.patch("/{edge_id}", response_model=FriendshipResponse)
async def update_friend_endpoint(
    edge_id: str,
    body: UpdateFriendRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    edge = await update_friendship(db, cache, user_id, edge_id, body.is_accepted, body.is_blocked)
    return FriendshipResponse.model_validate(edge)


@router.delete("/{edge_id}", status_code=204)
async def remove_friend_endpoint(
    edge_id: str,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
):
    await remove_friendship(db, cache, user_id, edge_id)
    return Response(status_code=204)
