"""
Admin Routes

Store back office: catalog management, order and subscription oversight,
and webhook delivery logs.

Every route requires a Supabase token (401) whose profile role is
`admin` (403).
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from app.api.dependencies import (
    CloudinaryDep,
    MercadoPagoDep,
    OrderRepoDep,
    ProductRepoDep,
    SessionDep,
    StripeDep,
    SubscriptionPaymentRepoDep,
    SubscriptionRepoDep,
    SubscriptionServiceDep,
    WebhookLogRepoDep,
    require_admin,
)
from app.api.rate_limit import rate_limit
from app.domain.orders import OrderResponse, OrderStatus, PaymentStatus
from app.domain.subscription import (
    SubscriptionPaymentResponse,
    SubscriptionResponse,
    SubscriptionStatus,
)
from app.infrastructure.db.models.order import OrderUpdate
from app.infrastructure.db.models.product import ProductCreate, ProductRead, ProductUpdate
from app.infrastructure.exceptions import DuplicateError, NotFoundError
from app.infrastructure.services.order_service import to_order_response
from app.infrastructure.services.subscription_service import to_subscription_response
from app.infrastructure.services.webhook_reconciliation_service import (
    WebhookReconciliationService,
)


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin), Depends(rate_limit("general"))],
)


# =============================================================================
# Products
# =============================================================================

@router.get("/products", response_model=List[ProductRead])
async def admin_list_products(
    repo: ProductRepoDep,
    category: Optional[str] = None,
    search: Optional[str] = None,
    include_inactive: bool = True,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
):
    return await repo.search(
        category=category,
        search=search,
        active_only=not include_inactive,
        skip=skip,
        limit=limit,
    )


@router.post("/products", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def admin_create_product(data: ProductCreate, repo: ProductRepoDep):
    if await repo.get_by_slug(data.slug):
        raise DuplicateError(
            f"A product with slug '{data.slug}' already exists",
            operation="create",
            table="products",
        )
    product = await repo.create(data)
    logger.info(f"Admin created product {product.id} ({product.slug})")
    return product


@router.patch("/products/{product_id}", response_model=ProductRead)
async def admin_update_product(product_id: int, data: ProductUpdate, repo: ProductRepoDep):
    if data.slug:
        existing = await repo.get_by_slug(data.slug)
        if existing and existing.id != product_id:
            raise DuplicateError(
                f"A product with slug '{data.slug}' already exists",
                operation="update",
                table="products",
            )

    product = await repo.update(product_id, data)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", table="products")
    logger.info(f"Admin updated product {product_id}: {sorted(data.model_dump(exclude_unset=True))}")
    return product


@router.delete("/products/{product_id}", response_model=ProductRead)
async def admin_deactivate_product(product_id: int, repo: ProductRepoDep):
    """Hide a product from the storefront; order history keeps referencing it."""
    product = await repo.get_by_id(product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", table="products")
    product = await repo.apply(product, {"is_active": False})
    logger.info(f"Admin deactivated product {product_id}")
    return product


@router.post("/products/images")
async def admin_upload_image(
    media: CloudinaryDep,
    file: UploadFile = File(...),
    folder: Optional[str] = None,
) -> Dict[str, Any]:
    """Upload a product image to Cloudinary and return its URL and public id."""
    content = await file.read()
    return await media.upload_image(
        content,
        file.filename or "upload",
        file.content_type or "application/octet-stream",
        folder,
    )


@router.delete("/products/images/{public_id:path}")
async def admin_delete_image(public_id: str, media: CloudinaryDep) -> Dict[str, Any]:
    deleted = await media.delete_image(public_id)
    return {"deleted": deleted, "public_id": public_id}


# =============================================================================
# Orders
# =============================================================================

@router.get("/orders", response_model=List[OrderResponse])
async def admin_list_orders(
    repo: OrderRepoDep,
    status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
    payment_status: Optional[PaymentStatus] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
):
    orders = await repo.list_orders(
        status=status_filter.value if status_filter else None,
        payment_status=payment_status.value if payment_status else None,
        skip=skip,
        limit=limit,
    )
    return [to_order_response(order, await repo.get_items(order.id)) for order in orders]


async def _get_order_or_404(order_id: str, repo):
    order = await repo.get_by_id(order_id)
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def admin_get_order(order_id: str, repo: OrderRepoDep):
    order = await _get_order_or_404(order_id, repo)
    return to_order_response(order, await repo.get_items(order.id))


@router.patch("/orders/{order_id}", response_model=OrderResponse)
async def admin_update_order(order_id: str, data: OrderUpdate, repo: OrderRepoDep):
    """Manual fulfilment updates (shipped, delivered, cancelled...)."""
    order = await _get_order_or_404(order_id, repo)
    changes = data.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if changes:
        order = await repo.apply(order, changes)
        logger.info(f"Admin updated order {order.id}: {changes}")
    return to_order_response(order, await repo.get_items(order.id))


@router.post("/orders/{order_id}/sync-payment")
async def admin_sync_order_payment(
    order_id: str,
    session: SessionDep,
    repo: OrderRepoDep,
    mercadopago: MercadoPagoDep,
    stripe_service: StripeDep,
) -> Dict[str, Any]:
    """
    Re-read the order's Mercado Pago payment and reconcile it.

    Uses the stored payment id, or the newest payment found for the
    order's external reference.
    """
    order = await _get_order_or_404(order_id, repo)

    payment_id = order.mercadopago_payment_id
    if not payment_id:
        payments = await mercadopago.search_payments(order.external_reference)
        if not payments:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No payment found for this order",
            )
        payment_id = str(payments[0]["id"])

    service = WebhookReconciliationService(session, mercadopago, stripe_service)
    result = await service.reconcile_payment(payment_id)
    await session.refresh(order)

    return {
        "status": result.status.value,
        "message": result.message,
        "payment_id": payment_id,
        "order": to_order_response(order, await repo.get_items(order.id)),
    }


# =============================================================================
# Subscriptions
# =============================================================================

@router.get("/subscriptions", response_model=List[SubscriptionResponse])
async def admin_list_subscriptions(
    repo: SubscriptionRepoDep,
    status_filter: Optional[SubscriptionStatus] = Query(default=None, alias="status"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
):
    subscriptions = await repo.list_subscriptions(
        status=status_filter.value if status_filter else None,
        skip=skip,
        limit=limit,
    )
    return [to_subscription_response(subscription) for subscription in subscriptions]


@router.get("/subscriptions/metrics")
async def admin_subscription_metrics(service: SubscriptionServiceDep) -> Dict[str, Any]:
    return await service.metrics()


@router.get(
    "/subscriptions/{subscription_id}/payments",
    response_model=List[SubscriptionPaymentResponse],
)
async def admin_list_subscription_payments(
    subscription_id: int,
    repo: SubscriptionRepoDep,
    payments: SubscriptionPaymentRepoDep,
    limit: int = Query(default=50, ge=1, le=200),
):
    """Billing history of one subscription, newest first."""
    if await repo.get_by_id(subscription_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return await payments.list_for_subscription(subscription_id, limit=limit)


# =============================================================================
# Webhook Logs
# =============================================================================

@router.get("/webhook-logs")
async def admin_list_webhook_logs(
    repo: WebhookLogRepoDep,
    gateway: Optional[str] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
):
    return await repo.list_recent(gateway=gateway, status=status_filter, limit=limit)
