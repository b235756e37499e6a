"""
Product API Routes

Public catalog endpoints. Only active products are listed.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.dependencies import ProductRepoDep
from app.api.rate_limit import rate_limit
from app.infrastructure.db.models.product import ProductRead


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/products",
    tags=["Products"],
    dependencies=[Depends(rate_limit("general"))],
)


@router.get("", response_model=List[ProductRead])
async def list_products(
    repo: ProductRepoDep,
    category: Optional[str] = None,
    search: Optional[str] = Query(default=None, max_length=100),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
):
    """List active products, optionally filtered by category or name."""
    return await repo.search(
        category=category,
        search=search,
        active_only=True,
        skip=skip,
        limit=limit,
    )


@router.get("/{slug}", response_model=ProductRead)
async def get_product(slug: str, repo: ProductRepoDep):
    product = await repo.get_by_slug(slug)
    if product is None or not product.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found",
        )
    return product
