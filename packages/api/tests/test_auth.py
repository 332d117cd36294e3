# This project was developed with assistance from AI tools.
"""Tests for bearer token authentication and role checks."""

from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from db.enums import UserRole
from fastapi import HTTPException
from starlette.requests import Request

from src.core.config import settings
from src.middleware.auth import _decode_token, get_current_user, issue_token, require_roles


def _user(user_id=5, role=UserRole.CONSTITUENT):
    user = MagicMock()
    user.id = user_id
    user.email = f"user{user_id}@example.org"
    user.role = role
    return user


def _request(token: str | None) -> Request:
    headers = [(b"authorization", f"Bearer {token}".encode())] if token else []
    return Request({"type": "http", "method": "GET", "path": "/", "headers": headers})


def test_issue_token_round_trips():
    payload = _decode_token(issue_token(_user(7)))
    assert payload.sub == "7"
    assert payload.email == "user7@example.org"


@pytest.mark.parametrize(
    "token,detail",
    [
        (issue_token(_user(), expires_in=-30), "Token has expired"),
        ("not-a-jwt", "Invalid token"),
        (jwt.encode({"email": "x@example.org"}, settings.JWT_SECRET, algorithm="HS256"), "Invalid token claims"),
        (jwt.encode({"sub": "1"}, "some-other-secret", algorithm="HS256"), "Invalid token"),
    ],
)
def test_bad_tokens_are_401(token, detail):
    with pytest.raises(HTTPException) as exc_info:
        _decode_token(token)
    assert exc_info.value.status_code == 401
    assert exc_info.value.detail == detail
    assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}


async def test_get_current_user_loads_subject():
    user = _user(11)
    session = MagicMock()
    session.get = AsyncMock(return_value=user)

    assert await get_current_user(_request(issue_token(user)), session) is user


async def test_get_current_user_unknown_subject():
    session = MagicMock()
    session.get = AsyncMock(return_value=None)

    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(_request(issue_token(_user(12))), session)
    assert exc_info.value.detail == "Unknown user"


async def test_get_current_user_without_header():
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(_request(None), MagicMock())
    assert exc_info.value.detail == "Missing authentication token"


async def test_require_roles_rejects_other_roles():
    check = require_roles(UserRole.ADMIN)
    with pytest.raises(HTTPException) as exc_info:
        await check(_user(role=UserRole.TRAINER))
    assert exc_info.value.status_code == 403


async def test_require_roles_allows_listed_role():
    admin = _user(role=UserRole.ADMIN)
    assert await require_roles(UserRole.ADMIN, UserRole.EVALUATOR)(admin) is admin
