"""
JWT access token verification.

Tokens are issued by the account service; this API only verifies them.
Symmetric algorithms (HS*) use ``jwt_secret``; asymmetric ones read the
public key from ``jwt_public_key_path``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jwt

from foodie.config import get_settings

_verification_key: str | None = None


def _load_key() -> str:
    """Load the verification key (cached after first call)."""
    global _verification_key  # noqa: PLW0603
    if _verification_key is None:
        settings = get_settings()
        if settings.jwt_algorithm.upper().startswith("HS"):
            _verification_key = settings.jwt_secret
        else:
            _verification_key = Path(settings.jwt_public_key_path).read_text()
    return _verification_key


def reset_keys() -> None:
    """Reset the cached key (useful for testing)."""
    global _verification_key  # noqa: PLW0603
    _verification_key = None


def verify_token(token: str, expected_type: str = "access") -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: The encoded JWT string.
        expected_type: Expected ``type`` claim, when the token carries one.

    Returns:
        Decoded payload dictionary.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or of the wrong type.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _load_key(),
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    token_type = payload.get("type")
    if token_type is not None and token_type != expected_type:
        msg = f"Expected token type '{expected_type}', got '{token_type}'"
        raise jwt.InvalidTokenError(msg)

    return payload


def user_id_from_token(token: str) -> int:
    """Verify a token and return its subject as a user id."""
    payload = verify_token(token)
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        msg = "Token subject is not a user id"
        raise jwt.InvalidTokenError(msg) from e
