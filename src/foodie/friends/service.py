"""Friendship graph business logic.

Rules:
- An edge ``user -> friend`` is a request until ``is_accepted``
- Accepting materializes the reciprocal edge so both directions are accepted
- A blocked edge in either direction refuses messaging
- Removing a friendship deletes both directions

Mutations commit their own transaction and then invalidate the affected
conversation caches, so a reader can never repopulate a cache entry from a
state older than the commit.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.cache import keys
from foodie.cache.store import CacheStore
from foodie.db.models import Friendship, User
from foodie.exceptions import AuthorizationError, NotFoundError, ValidationError
from foodie.friends.repository import (
    AcceptedEitherDirectionFilter,
    EdgeFilter,
    FriendshipRepository,
    InboundRequestFilter,
)

logger = logging.getLogger(__name__)


async def _invalidate_conversation_lists(cache: CacheStore | None, *user_ids: int) -> None:
    if cache is None:
        return
    hot, patterns = keys.conversation_list_invalidation(*user_ids)
    await cache.invalidate(hot, patterns)


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def create_friend_request(
    db: AsyncSession,
    user_id: int,
    friend_id: int | None = None,
    email: str | None = None,
    is_blocked: bool = False,
) -> Friendship:
    """Create the edge ``user_id -> target``. Idempotent: returns an existing edge unchanged."""
    if email is not None:
        target = await get_user_by_email(db, email)
        if target is None:
            raise NotFoundError("No user with this email")
        friend_id = target.id
    if friend_id is None:
        raise ValidationError("Either friendId or email is required")
    if friend_id == user_id:
        raise ValidationError("You cannot befriend yourself")

    repo = FriendshipRepository(db)
    existing = await repo.find_edge(user_id, friend_id)
    if existing is not None:
        return existing

    try:
        edge = await repo.create(user_id, friend_id, is_blocked=is_blocked)
        await db.commit()
    except IntegrityError:
        # Concurrent duplicate request; the other insert won.
        await db.rollback()
        existing = await repo.find_edge(user_id, friend_id)
        if existing is None:
            raise
        return existing

    logger.info("Friend request created: %d -> %d", user_id, friend_id)
    return edge


async def find_one_with_friend_id(db: AsyncSession, user_id: int, friend_id: int) -> Friendship | None:
    """Order-independent edge lookup, preferring the ``user_id -> friend_id`` direction."""
    edges = await FriendshipRepository(db).find_between(user_id, friend_id)
    for edge in edges:
        if edge.user_id == user_id:
            return edge
    return edges[0] if edges else None


async def get_authorization(db: AsyncSession, user_a: int, user_b: int) -> str | None:
    """Return why two users may not message each other, or None if they may."""
    edges = await FriendshipRepository(db).find_between(user_a, user_b)
    if not edges:
        return "not_friends"
    if any(edge.is_blocked for edge in edges):
        return "blocked"
    if not any(edge.is_accepted for edge in edges):
        return "request_pending"
    return None


async def ensure_can_message(db: AsyncSession, sender_id: int, receiver_id: int) -> None:
    reason = await get_authorization(db, sender_id, receiver_id)
    if reason is not None:
        raise AuthorizationError(reason)


async def accept_friend_request(
    db: AsyncSession,
    cache: CacheStore | None,
    accepter_id: int,
    requester_id: int,
) -> Friendship:
    """Accept the inbound request and make the reciprocal edge accepted too.

    Both writes are committed together. Returns the accepter's outgoing edge.
    """
    repo = FriendshipRepository(db)
    request = await repo.find_edge(requester_id, accepter_id)
    if request is None:
        raise NotFoundError("Friend request not found")

    await repo.update(request, {"is_accepted": True})
    reverse = await repo.find_edge(accepter_id, requester_id)
    if reverse is None:
        reverse = await repo.create(accepter_id, requester_id, is_accepted=True)
    else:
        await repo.update(reverse, {"is_accepted": True})
    await db.commit()

    await _invalidate_conversation_lists(cache, accepter_id, requester_id)
    logger.info("Friend request accepted: %d <-> %d", requester_id, accepter_id)
    return reverse


async def list_friends(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 10,
    is_accepted: bool | None = None,
    is_blocked: bool | None = None,
) -> tuple[list[Friendship], int]:
    """Outgoing edges of a user, newest first."""
    return await FriendshipRepository(db).find_all(
        EdgeFilter(user_id=user_id, is_accepted=is_accepted, is_blocked=is_blocked), page, limit
    )


async def get_friend_requests(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Friendship], int]:
    """Pending requests addressed to the user, newest first."""
    return await FriendshipRepository(db).find_all(InboundRequestFilter(user_id=user_id), page, limit)


async def find_all_friends_for_conversation(db: AsyncSession, user_id: int) -> list[Friendship]:
    """Accepted, unblocked edges touching the user in either direction."""
    edges, _ = await FriendshipRepository(db).find_all(AcceptedEitherDirectionFilter(user_id=user_id))
    return edges


async def update_friendship(
    db: AsyncSession,
    cache: CacheStore | None,
    user_id: int,
    edge_id: str,
    is_accepted: bool | None = None,
    is_blocked: bool | None = None,
) -> Friendship:
    """Update accept/block flags on an edge the user owns.

    Acceptance only moves forward and goes through ``accept_friend_request``,
    so it needs a request from the other side; ending a friendship is
    ``remove_friendship``.
    """
    repo = FriendshipRepository(db)
    edge = await repo.get(edge_id)
    if edge is None or edge.user_id != user_id:
        raise NotFoundError("Friendship not found")

    if is_accepted is False and edge.is_accepted:
        raise ValidationError("An accepted friendship cannot be un-accepted; remove it instead")
    if is_accepted and not edge.is_accepted:
        if await repo.find_edge(edge.friend_id, user_id) is None:
            raise ValidationError("Only the receiver of a friend request can accept it")
        edge = await accept_friend_request(db, cache, user_id, edge.friend_id)

    if is_blocked is None or is_blocked == edge.is_blocked:
        return edge

    await repo.update(edge, {"is_blocked": is_blocked})
    await db.commit()
    await _invalidate_conversation_lists(cache, edge.user_id, edge.friend_id)
    return edge


async def remove_friendship(
    db: AsyncSession,
    cache: CacheStore | None,
    user_id: int,
    edge_id: str,
) -> None:
    """Delete the user's edge and the reciprocal edge, if any."""
    repo = FriendshipRepository(db)
    edge = await repo.get(edge_id)
    if edge is None or edge.user_id != user_id:
        raise NotFoundError("Friendship not found")

    friend_id = edge.friend_id
    reverse = await repo.find_edge(friend_id, user_id)
    await repo.delete(edge)
    if reverse is not None:
        await repo.delete(reverse)
    await db.commit()

    await _invalidate_conversation_lists(cache, user_id, friend_id)
    logger.info("Friendship removed: %d <-> %d", user_id, friend_id)
