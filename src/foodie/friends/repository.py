"""Friendship edge persistence."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.db.models import Friendship


@dataclass(frozen=True)
class EdgeFilter:
    """Edges owned by ``user_id`` (outgoing), optionally filtered by state."""

    user_id: int
    is_accepted: bool | None = None
    is_blocked: bool | None = None

    def clause(self) -> ColumnElement[bool]:
        conditions = [Friendship.user_id == self.user_id]
        if self.is_accepted is not None:
            conditions.append(Friendship.is_accepted.is_(self.is_accepted))
        if self.is_blocked is not None:
            conditions.append(Friendship.is_blocked.is_(self.is_blocked))
        return and_(*conditions)


@dataclass(frozen=True)
class InboundRequestFilter:
    """Pending requests addressed to ``user_id``."""

    user_id: int

    def clause(self) -> ColumnElement[bool]:
        return and_(
            Friendship.friend_id == self.user_id,
            Friendship.is_accepted.is_(False),
            Friendship.is_blocked.is_(False),
        )


@dataclass(frozen=True)
class AcceptedEitherDirectionFilter:
    """Accepted, unblocked edges touching ``user_id`` in either direction."""

    user_id: int

    def clause(self) -> ColumnElement[bool]:
        return and_(
            or_(Friendship.user_id == self.user_id, Friendship.friend_id == self.user_id),
            Friendship.is_accepted.is_(True),
            Friendship.is_blocked.is_(False),
        )


FriendshipFilter = EdgeFilter | InboundRequestFilter | AcceptedEitherDirectionFilter


class FriendshipRepository:
    """CRUD and query access to the friendships table. No business rules."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(
        self,
        user_id: int,
        friend_id: int,
        *,
        is_accepted: bool = False,
        is_blocked: bool = False,
    ) -> Friendship:
        edge = Friendship(
            user_id=user_id,
            friend_id=friend_id,
            is_accepted=is_accepted,
            is_blocked=is_blocked,
        )
        self.db.add(edge)
        await self.db.flush()
        return edge

    async def get(self, edge_id: str) -> Friendship | None:
        result = await self.db.execute(select(Friendship).where(Friendship.id == edge_id))
        return result.scalar_one_or_none()

    async def find_edge(self, user_id: int, friend_id: int) -> Friendship | None:
        """The directed edge ``user_id -> friend_id``."""
        result = await self.db.execute(
            select(Friendship).where(Friendship.user_id == user_id, Friendship.friend_id == friend_id)
        )
        return result.scalar_one_or_none()

    async def find_between(self, user_a: int, user_b: int) -> list[Friendship]:
        """Both directed edges between two users, whichever exist."""
        result = await self.db.execute(
            select(Friendship).where(
                or_(
                    and_(Friendship.user_id == user_a, Friendship.friend_id == user_b),
                    and_(Friendship.user_id == user_b, Friendship.friend_id == user_a),
                )
            )
        )
        return list(result.scalars().all())

    async def find_all(
        self,
        where: FriendshipFilter,
        page: int | None = None,
        limit: int | None = None,
    ) -> tuple[list[Friendship], int]:
        clause = where.clause()
        total = (await self.db.execute(select(func.count()).select_from(Friendship).where(clause))).scalar_one()
        query = select(Friendship).where(clause).order_by(Friendship.created_at.desc(), Friendship.id)
        if page is not None and limit is not None:
            query = query.offset((page - 1) * limit).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def update(self, edge: Friendship, patch: dict[str, Any]) -> Friendship:
        for field, value in patch.items():
            setattr(edge, field, value)
        await self.db.flush()
        return edge

    async def delete(self, edge: Friendship) -> None:
        await self.db.delete(edge)
        await self.db.flush()
