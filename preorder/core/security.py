"""
Kitchen Session Check

The management API is protected by one shared password. A successful login
stores a deterministic token (sha256 of password + server secret) in the
``mgmt`` cookie; every protected route recomputes and compares it.
"""

import hashlib
import hmac
from typing import Optional

from fastapi import Request

from preorder.core.config import get_settings
from preorder.core.exceptions import AuthenticationError

SESSION_COOKIE = "mgmt"


def session_token(password: str, secret: str) -> str:
    """Derive the cookie value for a password/secret pair."""
    return hashlib.sha256(f"{password}{secret}".encode("utf-8")).hexdigest()


def password_matches(candidate: Optional[str]) -> bool:
    settings = get_settings()
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), settings.kitchen_password.encode("utf-8"))


def expected_token() -> str:
    settings = get_settings()
    return session_token(settings.kitchen_password, settings.session_secret)


async def require_kitchen_session(request: Request) -> None:
    """FastAPI dependency guarding the kitchen/management routes."""
    token = request.cookies.get(SESSION_COOKIE)

    if not token:
        raise AuthenticationError("Authentication required")

    if not hmac.compare_digest(token, expected_token()):
        raise AuthenticationError("Invalid session", error="INVALID_SESSION")
