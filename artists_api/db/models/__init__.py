# artists_api/db/models/__init__.py
"""
Import all model modules so SQLModel registers their tables
when init_db() calls SQLModel.metadata.create_all(engine).
"""

from .regional import Regional  # noqa: F401
from .user import User, UserRole  # noqa: F401

__all__ = [
    "Regional",
    "User",
    "UserRole",
]
