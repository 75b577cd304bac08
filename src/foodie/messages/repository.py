"""Message persistence.

Queries are expressed with small filter value objects instead of ad-hoc
predicate dicts; each filter knows how to turn itself into a WHERE clause.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.cache.keys import SortOrder
from foodie.db.models import Message


@dataclass(frozen=True)
class ThreadFilter:
    """Messages exchanged between exactly two users, in either direction."""

    participant_a: int
    participant_b: int
    exclude_deleted: bool = True

    def clause(self) -> ColumnElement[bool]:
        pair = or_(
            and_(Message.sender_id == self.participant_a, Message.receiver_id == self.participant_b),
            and_(Message.sender_id == self.participant_b, Message.receiver_id == self.participant_a),
        )
        if self.exclude_deleted:
            return and_(pair, Message.is_deleted.is_(False))
        return pair


@dataclass(frozen=True)
class InboxFilter:
    """Every message a user sent or received."""

    user_id: int
    exclude_deleted: bool = True

    def clause(self) -> ColumnElement[bool]:
        either = or_(Message.sender_id == self.user_id, Message.receiver_id == self.user_id)
        if self.exclude_deleted:
            return and_(either, Message.is_deleted.is_(False))
        return either


@dataclass(frozen=True)
class UnreadFilter:
    """Unread messages addressed to ``reader_id`` from ``sender_id``."""

    reader_id: int
    sender_id: int

    def clause(self) -> ColumnElement[bool]:
        return and_(
            Message.sender_id == self.sender_id,
            Message.receiver_id == self.reader_id,
            Message.is_read.is_(False),
        )


@dataclass(frozen=True)
class IdFilter:
    """Exactly the given messages, optionally only those still unread."""

    ids: tuple[str, ...]
    unread_only: bool = False

    def clause(self) -> ColumnElement[bool]:
        selected = Message.id.in_(self.ids)
        if self.unread_only:
            return and_(selected, Message.is_read.is_(False))
        return selected


MessageFilter = ThreadFilter | InboxFilter | UnreadFilter | IdFilter


class MessageRepository:
    """CRUD and query access to the messages table. No business rules."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def create(
        self,
        sender_id: int,
        receiver_id: int,
        content: str | None,
        image_id: str | None = None,
    ) -> Message:
        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content,
            image_id=image_id,
            is_read=False,
            is_deleted=False,
        )
        self.db.add(message)
        await self.db.flush()
        return message

    async def get(self, message_id: str) -> Message | None:
        result = await self.db.execute(select(Message).where(Message.id == message_id))
        return result.scalar_one_or_none()

    async def find_all(
        self,
        where: MessageFilter,
        page: int | None = None,
        limit: int | None = None,
        order: SortOrder = "desc",
    ) -> tuple[list[Message], int]:
        """Return one page of matching messages plus the total match count.

        Without ``page``/``limit`` the whole result set is returned.
        """
        clause = where.clause()
        total = (await self.db.execute(select(func.count()).select_from(Message).where(clause))).scalar_one()

        ordering = Message.created_at.desc() if order == "desc" else Message.created_at.asc()
        query = select(Message).where(clause).order_by(ordering, Message.id)
        if page is not None and limit is not None:
            query = query.offset((page - 1) * limit).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def find_ids(self, where: MessageFilter) -> list[str]:
        result = await self.db.execute(select(Message.id).where(where.clause()))
        return list(result.scalars().all())

    async def update(self, message_id: str, patch: dict[str, Any]) -> None:
        await self.db.execute(
            update(Message).where(Message.id == message_id).values(**patch).execution_options(synchronize_session="fetch")
        )

    async def update_many(self, where: MessageFilter, patch: dict[str, Any]) -> int:
        """Apply ``patch`` to every matching row. Returns the affected row count."""
        result = await self.db.execute(
            update(Message).where(where.clause()).values(**patch).execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
