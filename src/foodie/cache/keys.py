"""Canonical cache keys for the messaging read paths.

Keys follow ``messages:{scope}:{qualifiers}``. Thread keys use the ordered
user pair so both directions of a conversation share one entry, which lets a
write invalidate by prefix instead of tracking readers.
"""

from __future__ import annotations

from typing import Literal

SortOrder = Literal["asc", "desc"]

NAMESPACE = "messages"

# First pages that clients request most; dropped by exact key before the
# prefix sweep so the hottest entries disappear with one round trip.
HOT_PAGE_SIZES = (10, 20, 50)
HOT_ORDERS: tuple[SortOrder, ...] = ("desc", "asc")


def _pair(user_id: int, other_user_id: int) -> tuple[int, int]:
    return (user_id, other_user_id) if user_id <= other_user_id else (other_user_id, user_id)


def conversations_prefix(user_id: int) -> str:
    return f"{NAMESPACE}:conversations:{user_id}:"


def conversations_key(user_id: int, page: int, limit: int) -> str:
    return f"{conversations_prefix(user_id)}{page}:{limit}"


def thread_prefix(user_id: int, other_user_id: int | None) -> str:
    if other_user_id is None:
        return f"{NAMESPACE}:thread:{user_id}:all:"
    low, high = _pair(user_id, other_user_id)
    return f"{NAMESPACE}:thread:{low}:{high}:"


def thread_key(
    user_id: int,
    other_user_id: int | None,
    page: int,
    limit: int,
    order: SortOrder = "desc",
) -> str:
    return f"{thread_prefix(user_id, other_user_id)}{page}:{limit}:{order}"


def single_key(message_id: str) -> str:
    return f"{NAMESPACE}:single:{message_id}"


def conversation_invalidation(user_a: int, user_b: int) -> tuple[list[str], list[str]]:
    """Keys that may hold a view of the conversation between two users.

    Returns ``(hot_exact_keys, glob_patterns)``. Covers both users'
    conversation lists, the shared thread in both directions, and each user's
    all-messages inbox.
    """
    hot: list[str] = []
    for size in HOT_PAGE_SIZES:
        hot.append(conversations_key(user_a, 1, size))
        hot.append(conversations_key(user_b, 1, size))
        for order in HOT_ORDERS:
            hot.append(thread_key(user_a, user_b, 1, size, order))
            hot.append(thread_key(user_a, None, 1, size, order))
            hot.append(thread_key(user_b, None, 1, size, order))
    patterns = [
        f"{conversations_prefix(user_a)}*",
        f"{conversations_prefix(user_b)}*",
        f"{thread_prefix(user_a, user_b)}*",
        f"{thread_prefix(user_a, None)}*",
        f"{thread_prefix(user_b, None)}*",
    ]
    return hot, patterns


def conversation_list_invalidation(*user_ids: int) -> tuple[list[str], list[str]]:
    """Keys of the conversation lists only (friendship changes)."""
    hot = [conversations_key(user_id, 1, size) for user_id in user_ids for size in HOT_PAGE_SIZES]
    patterns = [f"{conversations_prefix(user_id)}*" for user_id in user_ids]
    return hot, patterns
