"""
backend/wagerledger/services/auth_service.py

Purpose:
    Identifies bettors and admins from HS256 access tokens. Accounts live in
    the surrounding platform; the ledger only reads the token's subject and
    admin claim.

Dependencies:
    - PyJWT
    - wagerledger.config
"""

import logging
import secrets
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import HTTPException, Request, status
from jwt.exceptions import InvalidTokenError

from wagerledger.config import settings
from wagerledger.utils import utcnow

logger = logging.getLogger("wagerledger.auth")

ALGORITHM = "HS256"
TOKEN_COOKIE = "access_token"


def decode_jwt(token: str) -> dict:
    """Decode with JWT_SECRET, falling back to JWT_SECRET_OLD while a rotation is in progress."""
    candidates = [s for s in (settings.JWT_SECRET, settings.JWT_SECRET_OLD) if s]
    last_error: Optional[InvalidTokenError] = None
    for secret in candidates:
        try:
            return jwt.decode(token, secret, algorithms=[ALGORITHM])
        except InvalidTokenError as exc:
            last_error = exc
    raise last_error or InvalidTokenError("No signing secret configured.")


def create_access_token(user_id: str, is_admin: bool = False, expires_minutes: Optional[int] = None) -> str:
    """Issue a short-lived access token. Used by tests and internal tooling."""
    claims = {
        "sub": user_id,
        "type": "access",
        "admin": bool(is_admin),
        "exp": utcnow() + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(TOKEN_COOKIE)
    if token:
        return token
    scheme, _, credentials = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_user(request: Request) -> dict:
    """FastAPI dependency: ``{"_id": <bettor id>, "is_admin": bool}``."""
    token = _extract_token(request)
    if not token:
        raise _unauthorized("Not authenticated.")
    try:
        claims = decode_jwt(token)
    except InvalidTokenError:
        raise _unauthorized("Invalid token.")
    if claims.get("type") != "access" or not claims.get("sub"):
        raise _unauthorized("Invalid token type.")
    return {"_id": str(claims["sub"]), "is_admin": bool(claims.get("admin"))}


async def get_admin_user(request: Request) -> dict:
    """FastAPI dependency for settlement and rollover endpoints."""
    user = await get_current_user(request)
    if not user["is_admin"]:
        logger.warning("Admin route denied: user=%s path=%s", user["_id"], request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins only.")
    return user
