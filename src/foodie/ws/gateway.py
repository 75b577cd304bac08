"""Socket event handlers for the messaging namespace.

One gateway serves one authenticated connection. Each inbound event runs in
its own database session and always yields an ``{success, data|error}``
envelope; no exception leaves a handler.
"""

from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from foodie.cache.store import CacheStore
from foodie.exceptions import FoodieError
from foodie.messages.schemas import MarkAsReadRequest, SendMessageRequest, TypingRequest
from foodie.messages.service import MessageService
from foodie.ws.fanout import FanoutAdapter
from foodie.ws.manager import user_room

logger = structlog.get_logger()

Envelope = dict[str, Any]


def _ok(data: Any = None) -> Envelope:
    return {"success": True, "data": data}


def _fail(error: str) -> Envelope:
    return {"success": False, "error": error}


class MessagesGateway:
    """Translates socket events into message service calls and room pushes."""

    def __init__(
        self,
        user_id: int,
        session_factory: async_sessionmaker[AsyncSession],
        cache: CacheStore,
        fanout: FanoutAdapter,
    ) -> None:
        self.user_id = user_id
        self.session_factory = session_factory
        self.cache = cache
        self.fanout = fanout
        self._handlers: dict[str, Callable[[dict], Awaitable[Envelope]]] = {
            "sendMessage": self.send_message,
            "markAsRead": self.mark_as_read,
            "typing": self.typing,
        }

    @property
    def events(self) -> set[str]:
        return set(self._handlers)

    async def handle(self, event: str, data: Any) -> Envelope:
        handler = self._handlers.get(event)
        if handler is None:
            return _fail(f"Unknown event: {event}")
        if not isinstance(data, dict):
            return _fail("Event data must be an object")
        try:
            return await handler(data)
        except PydanticValidationError as e:
            return _fail(_first_error(e))
        except FoodieError as e:
            logger.info("ws_event_rejected", ws_event=event, user_id=self.user_id, error=e.message)
            return _fail(e.message)
        except Exception:
            logger.exception("ws_event_failed", ws_event=event, user_id=self.user_id)
            return _fail("Internal error")

    async def send_message(self, data: dict) -> Envelope:
        dto = SendMessageRequest.model_validate(data)
        async with self.session_factory() as db:
            message = await MessageService(db, self.cache).send(self.user_id, dto)

        payload = message.model_dump(mode="json", by_alias=True)
        await self.fanout.emit(user_room(dto.receiver_id), "newMessage", payload)
        return _ok(payload)

    async def mark_as_read(self, data: dict) -> Envelope:
        dto = MarkAsReadRequest.model_validate(data)
        async with self.session_factory() as db:
            updated = await MessageService(db, self.cache).mark_as_read(self.user_id, dto.sender_id)

        await self.fanout.emit(user_room(dto.sender_id), "messagesRead", {"readerId": self.user_id})
        return _ok({"updated": updated})

    async def typing(self, data: dict) -> Envelope:
        dto = TypingRequest.model_validate(data)
        await self.fanout.emit(
            user_room(dto.receiver_id),
            "userTyping",
            {"userId": self.user_id, "isTyping": dto.is_typing},
        )
        return _ok()


def _first_error(error: PydanticValidationError) -> str:
    errors = error.errors()
    if not errors:
        return "Invalid payload"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]
