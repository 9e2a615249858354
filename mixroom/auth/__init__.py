"""Authentication: signed access tokens and FastAPI dependencies."""
from mixroom.auth.tokens import (
    AccessCodeError,
    TokenClaims,
    create_access_token,
    generate_access_code,
    validate_access_code,
)

__all__ = [
    "AccessCodeError",
    "TokenClaims",
    "create_access_token",
    "generate_access_code",
    "validate_access_code",
]
