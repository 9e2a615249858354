"""
Access Token Generation and Validation

Signed JWT access tokens identify the calling user (``sub``). Tokens are
self-contained; the user's role on a release is never stored in a token and
is resolved from the database on every request.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
from typing_extensions import Required, TypedDict

from mixroom.config import settings


class AccessCodeError(Exception):
    """Raised when access code validation fails."""
    pass


class TokenClaims(TypedDict, total=False):
    """Decoded JWT payload returned by validate_access_code.

    ``type``, ``iat``, and ``exp`` are always present.
    ``sub`` is the user ID; omitted for machine tokens.
    """

    type: Required[str]
    iat: Required[int]
    exp: Required[int]
    sub: str


def _get_secret() -> str:
    """Get the token signing secret, raising if not configured."""
    if not settings.access_token_secret:
        raise AccessCodeError(
            "MIXROOM_ACCESS_TOKEN_SECRET not configured. "
            "Generate one with: openssl rand -hex 32"
        )
    return settings.access_token_secret


def generate_access_code(
    user_id: str | None = None,
    duration_hours: int | None = None,
    duration_days: int | None = None,
    duration_minutes: int | None = None,
) -> str:
    """
    Generate a signed access code (JWT) with the specified duration.

    Args:
        user_id: User ID to associate with this token
        duration_hours: Token validity in hours
        duration_days: Token validity in days
        duration_minutes: Token validity in minutes (for testing)

    Returns:
        Signed JWT token string

    Raises:
        AccessCodeError: If no duration specified or secret not configured
    """
    secret = _get_secret()

    total_hours: float = 0.0
    if duration_hours:
        total_hours += duration_hours
    if duration_days:
        total_hours += duration_days * 24
    if duration_minutes:
        total_hours += duration_minutes / 60

    if total_hours <= 0:
        raise AccessCodeError(
            "Must specify at least one of: duration_hours, duration_days, duration_minutes"
        )

    now = datetime.now(timezone.utc)
    expiration = now + timedelta(hours=total_hours)

    payload: dict[str, object] = {
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int(expiration.timestamp()),
    }
    if user_id:
        payload["sub"] = user_id

    return jwt.encode(payload, secret, algorithm=settings.access_token_algorithm)


def create_access_token(
    user_id: str | None = None,
    expires_hours: int | None = None,
    expires_days: int | None = None,
) -> str:
    """Alias for generate_access_code taking hours/days."""
    return generate_access_code(
        user_id=user_id,
        duration_hours=expires_hours,
        duration_days=expires_days,
    )


def validate_access_code(token: str) -> TokenClaims:
    """
    Validate an access code and return its claims.

    Raises:
        AccessCodeError: If token is invalid, expired, or malformed
    """
    secret = _get_secret()

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[settings.access_token_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise AccessCodeError("Access code has expired")
    except jwt.InvalidTokenError as e:
        raise AccessCodeError(f"Invalid access code: {e}")

    raw_type = payload.get("type")
    if not isinstance(raw_type, str) or raw_type != "access":
        raise AccessCodeError("Invalid token type")

    raw_iat = payload.get("iat", 0)
    raw_exp = payload.get("exp", 0)
    if not isinstance(raw_iat, int) or not isinstance(raw_exp, int):
        raise AccessCodeError("Malformed token: iat/exp must be integers")

    claims = TokenClaims(type=raw_type, iat=raw_iat, exp=raw_exp)

    raw_sub = payload.get("sub")
    if raw_sub is not None:
        if not isinstance(raw_sub, str):
            raise AccessCodeError("Malformed token: sub must be a string")
        claims["sub"] = raw_sub

    return claims

