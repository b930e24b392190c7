# artists_api/core/deps.py
"""
Common FastAPI dependencies:

- DB session (`get_session`)
- Current user (`get_current_user`)
- Admin guard (`require_admin`)
- Regional sync service (`get_sync_service`)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlmodel import Session

from artists_api.core.config import get_settings
from artists_api.core.security import SESSION_COOKIE, read_session
from artists_api.db.models.user import User, UserRole
from artists_api.db.session import get_engine, get_session
from artists_api.services.regional_source import RegionalSource
from artists_api.services.regional_sync import RegionalSyncService

__all__ = [
    "get_session",
    "get_current_user",
    "require_admin",
    "get_sync_service",
]


def _get_user_from_cookie(request: Request, session: Session) -> Optional[User]:
    """
    Read the current user from the signed session cookie.

    Returns:
        - User instance if the cookie is valid and the user is active.
        - None otherwise.
    """
    uid = read_session(request.cookies.get(SESSION_COOKIE))
    if uid is None:
        return None

    user = session.get(User, uid)
    if user and user.is_active:
        return user
    return None


def get_current_user(
    request: Request,
    session: Session = Depends(get_session),
) -> User:
    """Strict current user dependency: 401 unless a valid session cookie is sent."""
    user = _get_user_from_cookie(request, session)
    if user is None:
        raise HTTPException(status_code=401, detail="Not logged in")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Guard: only admins are allowed."""
    if user.role != UserRole.admin:
        raise HTTPException(status_code=403, detail="Admin privileges required")
    return user


@lru_cache
def get_sync_service() -> RegionalSyncService:
    """Process-wide sync service, shared by the scheduler and the admin trigger."""
    settings = get_settings()
    return RegionalSyncService(
        RegionalSource.from_settings(settings),
        get_engine(),
        skip_empty_fetch=settings.REGIONAL_SYNC_SKIP_EMPTY_FETCH,
    )
