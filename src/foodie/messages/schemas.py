"""Pydantic schemas for message endpoints and socket events."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator, model_validator

from foodie.schemas import CamelModel, UserSummary, UtcDatetime

START_CONVERSATION_TEXT = "start a conversation"


class SendMessageRequest(CamelModel):
    receiver_id: int
    content: str | None = Field(None, max_length=4000)
    image_id: str | None = None

    @field_validator("image_id", mode="before")
    @classmethod
    def _image_id_as_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @model_validator(mode="after")
    def _content_or_image(self) -> SendMessageRequest:
        if not self.content and not self.image_id:
            raise ValueError("A message needs content or an image")
        return self


class UpdateMessageRequest(CamelModel):
    is_read: bool | None = None
    is_deleted: bool | None = None


class MarkAsReadRequest(CamelModel):
    sender_id: int


class TypingRequest(CamelModel):
    receiver_id: int
    is_typing: bool = True


class MessageResponse(CamelModel):
    id: str
    sender_id: int
    receiver_id: int
    content: str | None = None
    image_id: str | None = None
    is_read: bool
    is_deleted: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime


class MessageListResponse(CamelModel):
    data: list[MessageResponse]
    total: int


class LastMessage(CamelModel):
    id: str
    content: str | None = None
    created_at: UtcDatetime
    is_read: bool


class ConversationResponse(CamelModel):
    user: UserSummary
    last_message: LastMessage
    unread_count: int = 0


class ConversationListResponse(CamelModel):
    data: list[ConversationResponse]
    total: int


class MarkAsReadResponse(CamelModel):
    updated: int
