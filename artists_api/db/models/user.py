from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from .regional import utcnow


class UserRole(str, Enum):
    """Simple role enum used across the app."""

    admin = "admin"
    viewer = "viewer"


class User(SQLModel, table=True):
    """
    API users.

    Only admins may trigger a regional sync; viewers can read the mirror.
    """

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    login: str = Field(index=True, unique=True)
    password_hash: str
    role: UserRole = Field(default=UserRole.viewer, index=True)
    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utcnow, index=True)
