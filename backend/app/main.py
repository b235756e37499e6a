"""
Pet Gourmet Store - FastAPI Application

Main entry point for the backend API.
Provides catalog, checkout, subscription, webhook, cron and admin endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.infrastructure.exceptions import (
    DuplicateError,
    MediaServiceError,
    NotFoundError,
    PaymentGatewayError,
    PetStoreError,
    RateLimitError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Pet Gourmet backend starting in {settings.environment} mode...")

    try:
        from app.infrastructure.db.database import init_db
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.warning(f"Database initialization skipped: {e}")

    yield

    try:
        from app.infrastructure.db.database import close_db
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.warning(f"Database shutdown error: {e}")

    logger.info("Pet Gourmet backend shutting down...")


app = FastAPI(
    title="Pet Gourmet Store",
    description="Storefront backend: catalog, orders, subscriptions and payment reconciliation",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(status_code=400, content=exc.to_dict())


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(status_code=404, content=exc.to_dict())


@app.exception_handler(DuplicateError)
async def duplicate_error_handler(request: Request, exc: DuplicateError):
    return JSONResponse(status_code=409, content=exc.to_dict())


@app.exception_handler(RateLimitError)
async def rate_limit_error_handler(request: Request, exc: RateLimitError):
    """Handle rate limit errors."""
    headers = {}
    if exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=429, content=exc.to_dict(), headers=headers)


@app.exception_handler(PaymentGatewayError)
async def gateway_error_handler(request: Request, exc: PaymentGatewayError):
    """Upstream gateway failures."""
    logger.error(f"Payment gateway error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=502, content=exc.to_dict())


@app.exception_handler(MediaServiceError)
async def media_error_handler(request: Request, exc: MediaServiceError):
    logger.error(f"Media service error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=502, content=exc.to_dict())


@app.exception_handler(PetStoreError)
async def general_error_handler(request: Request, exc: PetStoreError):
    """Handle all other application errors."""
    logger.error(f"Unhandled application error on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=500, content=exc.to_dict())


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "pet-gourmet-store"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Pet Gourmet Store API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import (  # noqa: E402
    admin,
    auth,
    checkout,
    cron,
    orders,
    products,
    subscriptions,
    webhooks,
)

app.include_router(products.router, prefix="/api")
app.include_router(orders.router, prefix="/api")
app.include_router(checkout.router, prefix="/api")
app.include_router(subscriptions.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")
app.include_router(cron.router, prefix="/api")
app.include_router(auth.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
