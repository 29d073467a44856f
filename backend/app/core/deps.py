import uuid
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from app.core.security import decode_token, parse_uuid_claim

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=True)


@dataclass(frozen=True)
class CurrentUser:
    """Acting user as asserted by the identity provider's token.

    The workflow core trusts ``id`` as the authenticated actor.
    """

    id: uuid.UUID
    role: str
    department_id: uuid.UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"


async def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
) -> CurrentUser:
    """Validate the bearer JWT and return the acting user."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        if payload.get("type") != "access":
            raise credentials_exc
        user_id = parse_uuid_claim(payload.get("sub"))
        if user_id is None:
            raise credentials_exc
        department_id = parse_uuid_claim(payload.get("department_id"))
    except (JWTError, ValueError):
        raise credentials_exc

    return CurrentUser(
        id=user_id,
        role=payload.get("role") or "EMPLOYEE",
        department_id=department_id,
    )


def require_role(*roles: str):
    """Dependency factory — raises 403 if user role not in allowed list."""
    async def check(user: CurrentUser = Depends(get_current_user)):
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user.role}' is not permitted for this action.",
            )
        return user
    return check
