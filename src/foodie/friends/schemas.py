"""Pydantic schemas for friends endpoints."""

from __future__ import annotations

from pydantic import EmailStr, Field, model_validator

from foodie.schemas import CamelModel, UtcDatetime


class CreateFriendRequest(CamelModel):
    friend_id: int | None = None
    email: EmailStr | None = None
    is_blocked: bool = False

    @model_validator(mode="after")
    def _target_required(self) -> CreateFriendRequest:
        if self.friend_id is None and self.email is None:
            raise ValueError("Either friendId or email is required")
        return self


class UpdateFriendRequest(CamelModel):
    is_accepted: bool | None = None
    is_blocked: bool | None = None


class FriendshipResponse(CamelModel):
    id: str
    user_id: int
    friend_id: int
    is_accepted: bool
    is_blocked: bool
    created_at: UtcDatetime
    updated_at: UtcDatetime


class FriendshipListResponse(CamelModel):
    data: list[FriendshipResponse]
    total: int
    page: int
    limit: int = Field(..., ge=1)
