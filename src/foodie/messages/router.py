"""Direct messaging API endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from foodie.auth.dependencies import get_current_user_id
from foodie.cache.store import CacheStore
from foodie.dependencies import get_cache, get_db, get_fanout
from foodie.messages.schemas import (
    ConversationListResponse,
    MarkAsReadResponse,
    MessageListResponse,
    MessageResponse,
    SendMessageRequest,
    UpdateMessageRequest,
)
from foodie.messages.service import MessageService
from foodie.ws.fanout import FanoutAdapter
from foodie.ws.manager import user_room

router = APIRouter(prefix="/api/v1/messages", tags=["Messages"])


def get_message_service(
    db: AsyncSession = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
) -> MessageService:
    return MessageService(db, cache)


@router.post("", response_model=MessageResponse, status_code=201)
async def send_message_endpoint(
    body: SendMessageRequest,
    user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
    fanout: FanoutAdapter = Depends(get_fanout),
):
    """Send a direct message to a friend and push it to the receiver's sockets."""
    message = await service.send(user_id, body)
    await fanout.emit(user_room(body.receiver_id), "newMessage", message.model_dump(mode="json", by_alias=True))
    return message


@router.get("", response_model=MessageListResponse)
async def list_messages_endpoint(
    other_user_id: int | None = Query(None, alias="otherUserId"),
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    order: Literal["asc", "desc"] = Query("desc"),
    user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """The thread with ``otherUserId``, or every message of the caller when omitted."""
    return await service.list_thread(user_id, other_user_id, page, limit, order)


@router.get("/conversations", response_model=ConversationListResponse)
async def conversations_endpoint(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    return await service.get_conversations(user_id, page, limit)


@router.post("/{sender_id}/read", response_model=MarkAsReadResponse)
async def mark_as_read_endpoint(
    sender_id: int,
    user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
    fanout: FanoutAdapter = Depends(get_fanout),
):
    """Mark everything ``sender_id`` sent to the caller as read."""
    updated = await service.mark_as_read(user_id, sender_id)
    await fanout.emit(user_room(sender_id), "messagesRead", {"readerId": user_id})
    return MarkAsReadResponse(updated=updated)


@router.get("/{message_id}", response_model=MessageResponse)
async def get_message_endpoint(
    message_id: str,
    user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    return await service.find_one(message_id, user_id)


@router.patch("/{message_id}", response_model=MessageResponse)
async def update_message_endpoint(
    message_id: str,
    body: UpdateMessageRequest,
    user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    return await service.update(message_id, user_id, body)


@router.delete("/{message_id}", status_code=204)
async def delete_message_endpoint(
    message_id: str,
    user_id: int = Depends(get_current_user_id),
    service: MessageService = Depends(get_message_service),
):
    """Soft delete: the message disappears from threads but stays stored."""
    await service.remove(message_id, user_id)
    return Response(status_code=204)
