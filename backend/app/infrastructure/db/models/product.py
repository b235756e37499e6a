"""
Product SQLModel

Catalog products with per-billing-period subscription discounts.
"""

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict
from sqlmodel import Field, SQLModel

from app.infrastructure.db.models.base import TimestampMixin


class ProductBase(SQLModel):
    """
    Shared product fields (create/read).

    Discounts are percentages (0-100) applied to `price` for subscriptions.
    """

    name: str = Field(..., min_length=2, max_length=200)
    slug: str = Field(..., min_length=2, max_length=200, unique=True, index=True)
    description: Optional[str] = Field(default=None)
    price: float = Field(..., ge=0)
    image: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100, index=True)
    stock: int = Field(default=0, ge=0)
    is_active: bool = Field(default=True)
    subscription_available: bool = Field(default=False)

    weekly_discount: Optional[float] = Field(default=None, ge=0, le=100)
    biweekly_discount: Optional[float] = Field(default=None, ge=0, le=100)
    monthly_discount: Optional[float] = Field(default=None, ge=0, le=100)
    quarterly_discount: Optional[float] = Field(default=None, ge=0, le=100)
    annual_discount: Optional[float] = Field(default=None, ge=0, le=100)


class Product(ProductBase, TimestampMixin, table=True):
    """Product table."""

    __tablename__ = "products"

    id: Optional[int] = Field(default=None, primary_key=True)

    model_config = ConfigDict(from_attributes=True)


class ProductCreate(ProductBase):
    """Schema for creating a product."""
    pass


class ProductUpdate(SQLModel):
    """Schema for partial product updates (all fields optional)."""

    name: Optional[str] = Field(default=None, min_length=2, max_length=200)
    slug: Optional[str] = Field(default=None, min_length=2, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    image: Optional[str] = Field(default=None, max_length=500)
    category: Optional[str] = Field(default=None, max_length=100)
    stock: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    subscription_available: Optional[bool] = None
    weekly_discount: Optional[float] = Field(default=None, ge=0, le=100)
    biweekly_discount: Optional[float] = Field(default=None, ge=0, le=100)
    monthly_discount: Optional[float] = Field(default=None, ge=0, le=100)
    quarterly_discount: Optional[float] = Field(default=None, ge=0, le=100)
    annual_discount: Optional[float] = Field(default=None, ge=0, le=100)


class ProductRead(ProductBase):
    """Schema for reading a product."""

    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
