"""Security utilities exposed for convenience."""

from .auth import (
    OperatorTokenPayload,
    TokenConfigurationError,
    TokenValidationError,
    decode_operator_token,
    get_operator_payload,
    require_role,
)

__all__ = [
    "OperatorTokenPayload",
    "TokenConfigurationError",
    "TokenValidationError",
    "decode_operator_token",
    "get_operator_payload",
    "require_role",
]
