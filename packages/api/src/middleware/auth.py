# This project was developed with assistance from AI tools.
"""
Bearer token authentication.

Validates HS256 tokens signed with ``JWT_SECRET``, resolves the subject to a
``User`` row and provides FastAPI dependencies for route-level role checks.
"""

import logging
from datetime import timedelta
from typing import Annotated

import jwt
from db import User, get_db
from db.enums import UserRole
from fastapi import Depends, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.timeutil import utcnow
from ..schemas.auth import TokenPayload

logger = logging.getLogger(__name__)


def issue_token(user: User, expires_in: int = 3600) -> str:
    """Sign a bearer token for ``user`` (tests and operator tooling)."""
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "exp": utcnow() + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _extract_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:]
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_token(token: str) -> TokenPayload:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise _unauthorized("Invalid token") from exc
    try:
        return TokenPayload(**payload)
    except PydanticValidationError as exc:
        raise _unauthorized("Invalid token claims") from exc


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> User:
    """FastAPI dependency: validate the bearer token and load its user."""
    token = _extract_token(request)
    if not token:
        raise _unauthorized("Missing authentication token")

    payload = _decode_token(token)
    try:
        user_id = int(payload.sub)
    except ValueError as exc:
        raise _unauthorized("Invalid token subject") from exc

    user = await session.get(User, user_id)
    if user is None:
        logger.warning("Token subject %s does not match any user", payload.sub)
        raise _unauthorized("Unknown user")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_roles(*allowed_roles: UserRole):
    """Dependency factory: restrict a route to specific roles.

    Usage:
        @router.post("/x", dependencies=[Depends(require_roles(UserRole.ADMIN))])
    """

    async def _check(user: CurrentUser) -> User:
        if user.role not in allowed_roles:
            logger.warning(
                "RBAC denied: user=%s role=%s attempted route requiring %s",
                user.id,
                user.role.value,
                [r.value for r in allowed_roles],
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _check
