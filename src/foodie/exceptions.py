"""Domain error taxonomy.

Routers and the realtime gateway translate these into HTTP responses or
``{success: false}`` envelopes; services raise them.
"""

from __future__ import annotations

from typing import Literal

AuthorizationReason = Literal[
    "not_friends",
    "request_pending",
    "blocked",
    "not_participant",
    "not_receiver",
]

_REASON_MESSAGES: dict[str, str] = {
    "not_friends": "Cannot message this user: you are not friends",
    "request_pending": "Cannot message this user: the friend request has not been accepted",
    "blocked": "Cannot message this user: the friendship is blocked",
    "not_participant": "You are not a participant of this message",
    "not_receiver": "Only the receiver can mark this message as read",
}


class FoodieError(Exception):
    """Base class for all domain errors."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthorizationError(FoodieError):
    status_code = 403

    def __init__(self, reason: AuthorizationReason, message: str | None = None) -> None:
        super().__init__(message or _REASON_MESSAGES[reason])
        self.reason = reason


class NotFoundError(FoodieError):
    status_code = 404


class ValidationError(FoodieError):
    status_code = 400


class InfrastructureError(FoodieError):
    """A backing service a request cannot do without is unavailable.

    Raised for the database. Cache and broker outages are absorbed where they
    happen and degrade to a miss or local-only delivery instead.
    """

    status_code = 503


class ExternalServiceError(FoodieError):
    """The image classifier was unreachable or answered with garbage."""

    status_code = 502
