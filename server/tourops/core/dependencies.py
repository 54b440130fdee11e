"""FastAPI dependencies for database sessions and operator authentication."""

from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from .config import settings
from .database import get_db
from .exceptions import AuthenticationError, AuthorizationError


@dataclass(frozen=True)
class OperatorContext:
    """Authenticated caller acting on behalf of one operator (tenant)."""

    operator_id: UUID
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None
    roles: list[str] = field(default_factory=list)


async def get_current_operator(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> OperatorContext:
    """
    Authentication dependency that validates Bearer tokens.

    Token issuance lives in the auth service; this only verifies an HS256
    token and extracts the operator the caller acts for.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        OperatorContext: Caller identity and tenant

    Raises:
        AuthenticationError: If the token is missing, malformed, or invalid
        AuthorizationError: If the token does not carry an operator
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    try:
        # exp is verified by PyJWT when present
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError:
        raise AuthenticationError(detail="Invalid or expired access token")

    user_id = payload.get("sub") or payload.get("user_id")
    if user_id is None:
        raise AuthenticationError(detail="Invalid token payload")

    operator_id = payload.get("operator_id")
    if not operator_id:
        raise AuthorizationError(detail="Operator account required")

    try:
        operator_uuid = UUID(str(operator_id))
    except ValueError:
        raise AuthenticationError(detail="Invalid token payload")

    return OperatorContext(
        operator_id=operator_uuid,
        user_id=str(user_id),
        email=payload.get("email"),
        role=payload.get("role"),
        roles=list(payload.get("roles", [])),
    )


RequiredOperator = Depends(get_current_operator)
DatabaseSession = Depends(get_db)
