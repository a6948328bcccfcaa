"""
Authentication utilities for the web API.

- Admin sessions: HS256 JWT in an HttpOnly "session" cookie
- External cron caller: "Authorization: Bearer <CRON_SECRET>"
"""

import hmac
import os
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import HTTPException, Request

from core.config import get_cron_secret

JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = 24


def _get_jwt_secret() -> str:
    secret = os.environ.get("JWT_SECRET")
    if not secret:
        raise ValueError("JWT_SECRET environment variable not set")
    return secret


def create_jwt(user_id: str, username: str, is_admin: bool = False) -> str:
    """
    Create a signed JWT token for an authenticated user.

    Args:
        user_id: The user's ID
        username: The user's display name
        is_admin: Whether the user may use admin endpoints

    Returns:
        Signed JWT token string
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "username": username,
        "is_admin": is_admin,
        "iat": now,
        "exp": now + timedelta(hours=JWT_EXPIRATION_HOURS),
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_jwt(token: str) -> dict | None:
    """
    Verify and decode a JWT token.

    Returns:
        Decoded payload dict if valid, None if invalid
    """
    try:
        return jwt.decode(token, _get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


async def get_current_user(request: Request) -> dict:
    """
    FastAPI dependency to get the current authenticated user.

    Raises:
        HTTPException: 401 if not authenticated or invalid token
    """
    token = request.cookies.get("session")
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    payload = verify_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return payload


async def require_admin(request: Request) -> dict:
    """
    FastAPI dependency requiring an admin session.

    Raises:
        HTTPException: 401 if not authenticated, 403 if not an admin
    """
    user = await get_current_user(request)
    if not user.get("is_admin"):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def _has_valid_cron_secret(request: Request) -> bool:
    secret = get_cron_secret()
    header = request.headers.get("Authorization", "")
    if not secret or not header.startswith("Bearer "):
        return False
    return hmac.compare_digest(header[len("Bearer ") :], secret)


async def require_sync_caller(request: Request) -> dict:
    """
    FastAPI dependency for the forced sync endpoint.

    Accepts either the cron bearer secret or an admin session.

    Raises:
        HTTPException: 401 if neither credential is valid
    """
    if _has_valid_cron_secret(request):
        return {"sub": "cron", "is_admin": False}

    token = request.cookies.get("session")
    payload = verify_jwt(token) if token else None
    if payload and payload.get("is_admin"):
        return payload

    raise HTTPException(status_code=401, detail="Invalid or missing credentials")
