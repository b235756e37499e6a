"""
Product Repository

Catalog queries over the products table.
"""

from typing import Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.product import Product, ProductCreate, ProductUpdate
from app.infrastructure.db.repositories.base_repository import BaseRepository


class ProductRepository(BaseRepository[Product, ProductCreate, ProductUpdate]):
    """Repository for product CRUD and storefront queries."""

    def __init__(self, session: AsyncSession):
        super().__init__(Product, session)

    async def get_by_slug(self, slug: str) -> Optional[Product]:
        stmt = select(Product).where(Product.slug == slug)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_many(self, product_ids: Iterable[int]) -> dict[int, Product]:
        """Load several products keyed by id."""
        ids = list(set(product_ids))
        if not ids:
            return {}
        stmt = select(Product).where(Product.id.in_(ids))
        result = await self.session.execute(stmt)
        return {product.id: product for product in result.scalars().all()}

    async def search(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        active_only: bool = True,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Product]:
        """
        List products with optional filters.

        Args:
            category: Exact category match
            search: Case-insensitive match on name or description
            active_only: Hide deactivated products (storefront)
            skip: Pagination offset
            limit: Maximum rows
        """
        stmt = select(Product)
        if active_only:
            stmt = stmt.where(Product.is_active.is_(True))
        if category:
            stmt = stmt.where(Product.category == category)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(
                or_(Product.name.ilike(pattern), Product.description.ilike(pattern))
            )
        stmt = stmt.order_by(Product.name).offset(skip).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
