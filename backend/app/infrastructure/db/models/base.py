"""
Base Model for SQLModel ORM

Provides common fields and behavior for all store tables.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def DateTimeField(**kwargs: Any) -> Any:
    """timestamptz column, nullable unless told otherwise."""
    if "default_factory" not in kwargs:
        kwargs.setdefault("default", None)
    return Field(sa_type=DateTime(timezone=True), **kwargs)


class TimestampMixin(SQLModel):
    """
    Mixin providing timestamp fields for models.

    Columns are timestamptz so asyncpg accepts aware datetimes.
    """

    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),
        description="Record creation timestamp (UTC)"
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=DateTime(timezone=True),
        sa_column_kwargs={"onupdate": utcnow},
        description="Last update timestamp (UTC)"
    )


class UUIDMixin(SQLModel):
    """Mixin providing a UUID v4 primary key."""

    id: Optional[UUID] = Field(
        default_factory=uuid4,
        primary_key=True,
        nullable=False,
        description="Unique identifier (UUID v4)"
    )
