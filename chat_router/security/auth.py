"""Bearer-token authentication for the operator API."""

from __future__ import annotations

import os
from typing import Callable, TypedDict, cast

import jwt
from fastapi import Depends, HTTPException, Request, status
from jwt import ExpiredSignatureError, InvalidTokenError

_ROLE_LEVELS = {"viewer": 0, "operator": 1, "admin": 2}


class TokenConfigurationError(RuntimeError):
    """Raised when operator token configuration is invalid."""


class TokenValidationError(ValueError):
    """Raised when the provided operator token cannot be validated."""


class _OperatorTokenRequiredClaims(TypedDict):
    user_id: str


class OperatorTokenPayload(_OperatorTokenRequiredClaims, total=False):
    """Decoded JWT payload identifying a dashboard operator."""

    aud: str | list[str]
    email: str
    exp: int
    iat: int
    iss: str
    name: str
    roles: list[str]
    type: str


def _get_env(name: str, *, required: bool = True, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if required and (value is None or not value.strip()):
        raise TokenConfigurationError(
            f"Environment variable '{name}' must be set for operator token validation.",
        )
    if value is None:
        return ""
    return value.strip()


def decode_operator_token(token: str) -> OperatorTokenPayload:
    """Decode and validate an operator access token.

    Raises:
        TokenConfigurationError: If mandatory environment configuration is missing.
        TokenValidationError: If the signature, claims or expiry are invalid.
    """

    secret_key = _get_env("CHAT_TOKEN_SECRET")
    audience = _get_env("CHAT_TOKEN_AUDIENCE")
    issuer = _get_env("CHAT_TOKEN_ISSUER")
    algorithm = _get_env("CHAT_TOKEN_ALGORITHM", required=False, default="HS256")

    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[algorithm],
            audience=audience,
            issuer=issuer,
            options={"require": ["exp", "aud", "iss"]},
        )
    except ExpiredSignatureError as exc:
        raise TokenValidationError("Operator token has expired.") from exc
    except InvalidTokenError as exc:
        raise TokenValidationError("Operator token is invalid.") from exc

    if "user_id" not in payload:
        raise TokenValidationError("Operator token payload must include 'user_id'.")
    type_claim = payload.get("type")
    if type_claim and type_claim != "access":
        raise TokenValidationError("Operator token must be an access token.")

    return cast(OperatorTokenPayload, payload)


async def get_operator_payload(request: Request) -> OperatorTokenPayload:
    """Extract the operator identity from the ``Authorization`` header.

    Answers ``401`` when the header is missing or invalid and ``500`` when
    token validation is not configured.
    """

    authorization = request.headers.get("Authorization")
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header.",
        )

    scheme, _, credentials = authorization.partition(" ")
    if not credentials or scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must use Bearer scheme.",
        )

    try:
        return decode_operator_token(credentials)
    except TokenConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    except TokenValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


def _highest_role(roles: list[str]) -> str | None:
    ranked = sorted({role for role in roles if role in _ROLE_LEVELS}, key=_ROLE_LEVELS.get)
    return ranked[-1] if ranked else None


def require_role(min_role: str) -> Callable[..., OperatorTokenPayload]:
    """Create a dependency ensuring the caller has at least ``min_role`` privileges."""

    if min_role not in _ROLE_LEVELS:
        raise ValueError(f"Unknown role: {min_role}")

    async def dependency(
        payload: OperatorTokenPayload = Depends(get_operator_payload),
    ) -> OperatorTokenPayload:
        roles = payload.get("roles") or []
        if isinstance(roles, str):
            roles = [roles]
        highest = _highest_role(list(roles))
        if highest is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No roles assigned to user.",
            )
        if _ROLE_LEVELS[highest] < _ROLE_LEVELS[min_role]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role.",
            )
        return payload

    return dependency


__all__ = [
    "OperatorTokenPayload",
    "TokenConfigurationError",
    "TokenValidationError",
    "decode_operator_token",
    "get_operator_payload",
    "require_role",
]
