from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Regional(SQLModel, table=True):
    """
    Local mirror of a regional published by the external source.

    Notes:
    - Rows are append-only: an attribute change upstream deactivates the
      current row and inserts a new one with the same `external_id`.
    - `is_active` is the only column ever changed after insert.
    - At most one active row per `external_id`, enforced by a partial
      unique index (PostgreSQL and SQLite both support it).
    """

    __tablename__ = "regionals"
    __table_args__ = (
        Index(
            "uq_regionals_active_external_id",
            "external_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    external_id: str = Field(index=True, max_length=64)

    # Mirrored attributes, copied verbatim at creation time
    name: str = Field(max_length=255)

    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
