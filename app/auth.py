"""Caller identity, provided by the session-cookie auth collaborator."""
from fastapi import Cookie, Header

from app.exceptions import AuthenticationError


def get_current_user_id(
    x_user_id: str | None = Header(default=None),
    session_user: str | None = Cookie(default=None),
) -> str:
    """Resolve the user id from the X-User-Id header or the session_user cookie"""
    user_id = x_user_id or session_user
    if not user_id:
        raise AuthenticationError("Not authenticated")
    return user_id
