"""Who is calling: access-token cookie -> user document.

Tokens are issued by the account service (login/refresh live there); this
service only verifies them. A token is accepted when it is an unexpired
HS256 ``access`` token, its ``jti`` is not on the blocklist and its user
exists and is not banned.
"""

import logging
from typing import Optional

from fastapi import HTTPException, Request, status
import jwt
from jwt.exceptions import InvalidTokenError as JWTError

from app.config import settings
import app.database as _db
from app.utils import to_object_id

logger = logging.getLogger("lastpick.auth")

ALGORITHM = "HS256"
ACCESS_COOKIE = "access_token"


def decode_jwt(token: str) -> dict:
    """Verify with JWT_SECRET, then with JWT_SECRET_OLD while a secret
    rotation is in progress."""
    secrets = [settings.JWT_SECRET] + ([settings.JWT_SECRET_OLD] if settings.JWT_SECRET_OLD else [])
    last_error: Optional[JWTError] = None
    for secret in secrets:
        try:
            return jwt.decode(token, secret, algorithms=[ALGORITHM])
        except JWTError as exc:
            last_error = exc
    raise last_error


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(status.HTTP_401_UNAUTHORIZED, message)


async def get_current_user(request: Request) -> dict:
    """FastAPI dependency for every /api/lms endpoint."""
    token = request.cookies.get(ACCESS_COOKIE)
    if not token:
        raise _unauthorized("Not signed in.")

    try:
        claims = decode_jwt(token)
    except JWTError:
        raise _unauthorized("Invalid token.")
    if claims.get("type") != "access":
        raise _unauthorized("Invalid token type.")

    if claims.get("jti") and await _db.db.access_blocklist.find_one({"jti": claims["jti"]}, {"_id": 1}):
        raise _unauthorized("Token revoked.")

    user_oid = to_object_id(claims.get("sub"))
    if user_oid is None:
        raise _unauthorized("Invalid token.")
    user = await _db.db.users.find_one({"_id": user_oid, "is_deleted": {"$ne": True}})
    if not user:
        raise _unauthorized("User not found.")
    if user.get("is_banned"):
        logger.warning("Banned user attempted access: %s", user_oid)
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Account suspended.")
    return user
