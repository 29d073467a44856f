"""Rate limiter singleton — import from here to avoid circular deps.

Limits are keyed by the acting user (bearer token subject) so approvers
behind one proxy do not share a bucket; unauthenticated requests fall back to
the client address.
"""
from fastapi import Request
from jose import JWTError
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.security import decode_token


def actor_key(request: Request) -> str:
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            subject = decode_token(token).get("sub")
        except JWTError:
            subject = None
        if subject:
            return f"user:{subject}"
    return get_remote_address(request)


limiter = Limiter(key_func=actor_key)
