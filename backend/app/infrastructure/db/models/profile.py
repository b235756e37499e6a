"""
Profile SQLModel

Mirrors a Supabase Auth user and carries the store role used for admin checks.
"""

from typing import Optional
from uuid import UUID

from pydantic import ConfigDict
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import TimestampMixin


class ProfileRole:
    ADMIN = "admin"
    USER = "user"


class Profile(TimestampMixin, table=True):
    """
    Profile table.

    The primary key is the Supabase auth user id.
    """

    __tablename__ = "profiles"

    id: UUID = Field(primary_key=True, description="Auth user id")
    email: Optional[str] = Field(default=None, max_length=255, index=True)
    full_name: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=30)
    role: str = Field(default=ProfileRole.USER, max_length=20)

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == ProfileRole.ADMIN


class ProfileRead(SQLModel):
    """Schema for reading a profile."""

    id: UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: str
