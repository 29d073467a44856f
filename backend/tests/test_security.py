"""Tests for bearer-token identity: token decoding and role checks."""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from jose import jwt

from app.core.config import settings
from app.core.deps import CurrentUser, get_current_user, require_role
from app.core.security import create_access_token, decode_token, parse_uuid_claim


USER_ID = uuid.UUID("f96955d0-752f-4e0c-b1dc-d26d8dd1460e")
DEPARTMENT_ID = uuid.UUID("0c9a3f4e-2d1b-4a8e-9f6c-5b7d8e9a0b1c")


def test_token_round_trip_claims():
    token = create_access_token(str(USER_ID), "APPROVER", str(DEPARTMENT_ID))
    claims = decode_token(token)
    assert claims["sub"] == str(USER_ID)
    assert claims["role"] == "APPROVER"
    assert claims["department_id"] == str(DEPARTMENT_ID)
    assert claims["type"] == "access"


def test_parse_uuid_claim():
    assert parse_uuid_claim(None) is None
    assert parse_uuid_claim(str(USER_ID)) == USER_ID
    with pytest.raises(ValueError):
        parse_uuid_claim("not-a-uuid")


@pytest.mark.asyncio
async def test_current_user_from_token():
    user = await get_current_user(create_access_token(str(USER_ID), "ADMIN", str(DEPARTMENT_ID)))
    assert user == CurrentUser(id=USER_ID, role="ADMIN", department_id=DEPARTMENT_ID)
    assert user.is_admin


@pytest.mark.asyncio
@pytest.mark.parametrize("claims", [
    {"sub": str(USER_ID), "role": "ADMIN", "type": "refresh"},
    {"role": "ADMIN", "type": "access"},
    {"sub": "nobody", "role": "ADMIN", "type": "access"},
])
async def test_bad_claims_are_401(claims):
    claims = {**claims, "exp": datetime.now(timezone.utc) + timedelta(minutes=5)}
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(token)
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_expired_or_forged_token_is_401():
    expired = jwt.encode(
        {"sub": str(USER_ID), "type": "access", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )
    forged = jwt.encode({"sub": str(USER_ID), "type": "access"}, "wrong-secret", algorithm="HS256")
    for token in (expired, forged):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(token)
        assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_require_role():
    check = require_role("ADMIN")
    admin = CurrentUser(id=USER_ID, role="ADMIN")
    assert await check(user=admin) is admin
    with pytest.raises(HTTPException) as exc_info:
        await check(user=CurrentUser(id=USER_ID, role="EMPLOYEE"))
    assert exc_info.value.status_code == 403


def _request(headers: dict[str, str]):
    from starlette.requests import Request

    return Request({
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("10.0.0.7", 41000),
    })


def test_rate_limit_key_is_token_subject():
    from app.core.limiter import actor_key

    token = create_access_token(str(USER_ID), "APPROVER")
    assert actor_key(_request({"Authorization": f"Bearer {token}"})) == f"user:{USER_ID}"
    assert actor_key(_request({"Authorization": "Bearer garbage"})) == "10.0.0.7"
    assert actor_key(_request({})) == "10.0.0.7"
