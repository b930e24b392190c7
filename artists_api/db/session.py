# artists_api/db/session.py
from __future__ import annotations

import logging
from typing import Generator

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from artists_api.core.config import get_settings
from artists_api.core.security import hash_password
from artists_api.db.models import User, UserRole

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------


def build_engine(url: str) -> Engine:
    """
    Create a SQLModel engine for `url`.

    SQLite is used for local runs and tests: the scheduler thread shares
    the engine, and an in-memory database must live on a single connection.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False, pool_pre_ping=True)


engine = build_engine(get_settings().DATABASE_URL)


def get_engine() -> Engine:
    """Return the shared SQLModel engine instance."""
    return engine


# ---------------------------------------------------------------------
# Session dependency
# ---------------------------------------------------------------------
def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency: yields a scoped DB session."""
    with Session(get_engine()) as session:
        yield session


# ---------------------------------------------------------------------
# Schema initialization (non-destructive + idempotent seed)
# ---------------------------------------------------------------------
def init_db(bind: Engine | None = None) -> None:
    """
    Create all tables if they don't exist and seed the admin user once.

    - Non-destructive: existing tables are not dropped.
    - Idempotent: the admin is inserted only while the users table is empty.
    """
    bind = bind or get_engine()

    # Import models so that SQLModel sees all table definitions
    from artists_api.db import models  # noqa: F401

    SQLModel.metadata.create_all(bind)

    settings = get_settings()
    with Session(bind) as session:
        if session.exec(select(User.id).limit(1)).first() is not None:
            return

        session.add(
            User(
                login=settings.ADMIN_LOGIN,
                password_hash=hash_password(settings.ADMIN_PASSWORD),
                role=UserRole.admin,
                is_active=True,
            )
        )
        session.commit()
        log.info("Seeded admin user %r", settings.ADMIN_LOGIN)
