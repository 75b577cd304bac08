"""Direct messaging business logic.

Read paths (thread, inbox, conversations, single message) go through the
cache: check, query on miss, populate. Every write invalidates every key that
could hold a view of the affected conversation twice, once before the write
and once after the commit. A concurrent reader that repopulated a key from the
pre-write state between the two sweeps has its entry dropped by the second.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.cache import keys
from foodie.cache.keys import SortOrder
from foodie.cache.store import CacheStore
from foodie.config import Settings, get_settings
from foodie.db.models import Message, User
from foodie.exceptions import AuthorizationError, NotFoundError, ValidationError
from foodie.friends.service import ensure_can_message, find_all_friends_for_conversation
from foodie.messages.repository import IdFilter, InboxFilter, MessageRepository, ThreadFilter, UnreadFilter
from foodie.messages.schemas import (
    START_CONVERSATION_TEXT,
    ConversationListResponse,
    ConversationResponse,
    LastMessage,
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
    UpdateMessageRequest,
)
from foodie.schemas import UserSummary, ensure_utc

logger = structlog.get_logger()


class MessageService:
    """Messaging operations for one database session."""

    def __init__(self, db: AsyncSession, cache: CacheStore, settings: Settings | None = None) -> None:
        self.db = db
        self.cache = cache
        self.settings = settings or get_settings()
        self.repo = MessageRepository(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _page(self, page: int, limit: int | None, default: int) -> tuple[int, int]:
        if page < 1:
            raise ValidationError("page must be >= 1")
        if limit is None:
            limit = default
        if limit < 1:
            raise ValidationError("limit must be >= 1")
        return page, min(limit, self.settings.messages_max_page_size)

    async def _invalidate_pair(self, user_a: int, user_b: int, extra: Iterable[str] = ()) -> None:
        hot, patterns = keys.conversation_invalidation(user_a, user_b)
        await self.cache.invalidate([*extra, *hot], patterns)

    async def _get_owned(self, message_id: str, user_id: int) -> Message:
        message = await self.repo.get(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if user_id not in (message.sender_id, message.receiver_id):
            raise AuthorizationError("not_participant")
        return message

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def send(self, sender_id: int, dto: SendMessageRequest) -> MessageResponse:
        """Persist a message from ``sender_id`` to ``dto.receiver_id``.

        Raises AuthorizationError (not_friends, request_pending, blocked)
        before anything is written.
        """
        receiver_id = dto.receiver_id
        await ensure_can_message(self.db, sender_id, receiver_id)

        await self._invalidate_pair(sender_id, receiver_id)
        message = await self.repo.create(sender_id, receiver_id, dto.content, dto.image_id)
        await self.db.commit()
        await self._invalidate_pair(sender_id, receiver_id)

        logger.info("message_sent", message_id=message.id, sender_id=sender_id, receiver_id=receiver_id)
        return MessageResponse.model_validate(message)

    async def mark_as_read(self, reader_id: int, sender_id: int) -> int:
        """Mark every unread message from ``sender_id`` to ``reader_id`` as read.

        Idempotent: a second call finds nothing unread and returns 0.
        """
        ids = await self.repo.find_ids(UnreadFilter(reader_id=reader_id, sender_id=sender_id))
        if not ids:
            return 0

        singles = [keys.single_key(message_id) for message_id in ids]
        await self._invalidate_pair(reader_id, sender_id, singles)
        updated = await self.repo.update_many(IdFilter(tuple(ids), unread_only=True), {"is_read": True})
        await self.db.commit()
        await self._invalidate_pair(reader_id, sender_id, singles)

        logger.debug("messages_marked_read", reader_id=reader_id, sender_id=sender_id, count=updated)
        return updated

    async def update(self, message_id: str, user_id: int, dto: UpdateMessageRequest) -> MessageResponse:
        """Set ``isRead`` or ``isDeleted``. Both flags only move from false to true."""
        message = await self._get_owned(message_id, user_id)
        if dto.is_read is not None and message.receiver_id != user_id:
            raise AuthorizationError("not_receiver")
        if dto.is_read is False and message.is_read:
            raise ValidationError("A read message cannot be marked unread")
        if dto.is_deleted is False and message.is_deleted:
            raise ValidationError("A deleted message cannot be restored")

        patch = {field: True for field, value in dto.model_dump(exclude_none=True).items() if value}
        if not patch:
            return MessageResponse.model_validate(message)

        single = [keys.single_key(message_id)]
        await self._invalidate_pair(message.sender_id, message.receiver_id, single)
        await self.repo.update(message_id, patch)
        await self.db.commit()
        await self._invalidate_pair(message.sender_id, message.receiver_id, single)

        await self.db.refresh(message)
        return MessageResponse.model_validate(message)

    async def remove(self, message_id: str, user_id: int) -> None:
        """Soft delete. Either participant may remove a message."""
        message = await self._get_owned(message_id, user_id)
        if message.is_deleted:
            return

        single = [keys.single_key(message_id)]
        await self._invalidate_pair(message.sender_id, message.receiver_id, single)
        await self.repo.update(message_id, {"is_deleted": True})
        await self.db.commit()
        await self._invalidate_pair(message.sender_id, message.receiver_id, single)

        logger.info("message_removed", message_id=message_id, user_id=user_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_one(self, message_id: str, user_id: int) -> MessageResponse:
        key = keys.single_key(message_id)
        cached = await self.cache.get(key)
        if cached is not None:
            response = MessageResponse.model_validate(cached)
            if user_id not in (response.sender_id, response.receiver_id):
                raise AuthorizationError("not_participant")
            return response

        message = await self._get_owned(message_id, user_id)
        response = MessageResponse.model_validate(message)
        await self.cache.set(key, response.model_dump(mode="json", by_alias=True))
        return response

    async def list_thread(
        self,
        user_id: int,
        other_user_id: int | None = None,
        page: int = 1,
        limit: int | None = None,
        order: SortOrder = "desc",
    ) -> MessageListResponse:
        """Non-deleted messages between two users, or all of a user's messages.

        A persistence failure yields an empty page instead of an error.
        """
        page, limit = self._page(page, limit, self.settings.messages_default_page_size)
        key = keys.thread_key(user_id, other_user_id, page, limit, order)

        cached = await self.cache.get(key)
        if cached is not None:
            return MessageListResponse.model_validate(cached)

        where = InboxFilter(user_id=user_id) if other_user_id is None else ThreadFilter(user_id, other_user_id)
        try:
            rows, total = await self.repo.find_all(where, page, limit, order)
        except SQLAlchemyError:
            logger.exception("thread_query_failed", user_id=user_id, other_user_id=other_user_id)
            return MessageListResponse(data=[], total=0)

        result = MessageListResponse(data=[MessageResponse.model_validate(m) for m in rows], total=total)
        await self.cache.set(key, result.model_dump(mode="json", by_alias=True))
        return result

    async def get_conversations(self, user_id: int, page: int = 1, limit: int | None = None) -> ConversationListResponse:
        """One entry per counterpart, newest activity first.

        Counterparts come from the message history plus accepted friends who
        have not exchanged a message yet (placeholder entries). The unread
        count is 1 when the latest message is unread and addressed to the
        user, otherwise 0.
        """
        page, limit = self._page(page, limit, self.settings.conversations_default_page_size)
        key = keys.conversations_key(user_id, page, limit)

        cached = await self.cache.get(key)
        if cached is not None:
            return ConversationListResponse.model_validate(cached)

        try:
            entries = await self._build_conversations(user_id)
        except SQLAlchemyError:
            logger.exception("conversations_query_failed", user_id=user_id)
            return ConversationListResponse(data=[], total=0)

        start = (page - 1) * limit
        result = ConversationListResponse(data=entries[start : start + limit], total=len(entries))
        await self.cache.set(key, result.model_dump(mode="json", by_alias=True))
        return result

    async def _build_conversations(self, user_id: int) -> list[ConversationResponse]:
        messages, _ = await self.repo.find_all(InboxFilter(user_id=user_id), order="desc")

        latest: dict[int, tuple[LastMessage, int]] = {}
        for message in messages:
            other_id = message.receiver_id if message.sender_id == user_id else message.sender_id
            if other_id in latest:
                continue
            unread = 1 if message.receiver_id == user_id and not message.is_read else 0
            latest[other_id] = (
                LastMessage(
                    id=message.id,
                    content=message.content,
                    created_at=message.created_at,
                    is_read=message.is_read,
                ),
                unread,
            )

        befriended: dict[int, datetime] = {}
        for edge in await find_all_friends_for_conversation(self.db, user_id):
            other_id = edge.friend_id if edge.user_id == user_id else edge.user_id
            changed = edge.updated_at or edge.created_at
            if other_id not in befriended or _timestamp(changed) > _timestamp(befriended[other_id]):
                befriended[other_id] = changed

        for other_id, changed in befriended.items():
            if other_id in latest:
                continue
            latest[other_id] = (
                LastMessage(
                    id="0",
                    content=START_CONVERSATION_TEXT,
                    created_at=changed,
                    is_read=True,
                ),
                0,
            )

        users = await self._user_summaries(latest.keys())
        entries = [
            ConversationResponse(
                user=users.get(other_id) or UserSummary(id=other_id),
                last_message=last,
                unread_count=unread,
            )
            for other_id, (last, unread) in latest.items()
        ]
        entries.sort(key=lambda e: _timestamp(e.last_message.created_at), reverse=True)
        return entries

    async def _user_summaries(self, user_ids: Iterable[int]) -> dict[int, UserSummary]:
        ids = list(user_ids)
        if not ids:
            return {}
        result = await self.db.execute(select(User).where(User.id.in_(ids)))
        return {user.id: UserSummary.model_validate(user) for user in result.scalars().all()}


def _timestamp(value: datetime) -> float:
    return ensure_utc(value).timestamp()
