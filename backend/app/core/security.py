import uuid
from datetime import datetime, timedelta, timezone

from jose import jwt

from app.core.config import settings


# ─── JWT ──────────────────────────────────────────────────────────────────────

def create_access_token(
    subject: str,
    role: str,
    department_id: str | None = None,
) -> str:
    """Mint an access token in the identity provider's format.

    Production tokens come from the external identity provider; this helper
    exists for the seed script and tests.
    """
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    )
    claims = {"sub": subject, "role": role, "exp": expire, "type": "access"}
    if department_id:
        claims["department_id"] = department_id
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Raises JWTError on invalid/expired token."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])


def parse_uuid_claim(value: str | None) -> uuid.UUID | None:
    """Return a UUID for a claim value, None when absent. Raises ValueError if malformed."""
    if not value:
        return None
    return uuid.UUID(str(value))
