"""
API Dependencies

Authentication, authorization and service providers for the routers.

Supabase JWTs are verified against the project JWKS (ES256) first and the
legacy HS256 secret second. Admin routes additionally require a profile
whose role is `admin`. Cron routes use a shared bearer secret.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Annotated, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.config.settings import get_settings
from app.infrastructure.auth.supabase_admin import SupabaseAdminService, get_supabase_admin
from app.infrastructure.db.dependencies import ProfileRepoDep
from app.infrastructure.db.models.profile import Profile


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

AUDIENCE = "authenticated"

_jwks_client: Optional[PyJWKClient] = None


@dataclass(frozen=True)
class AuthenticatedUser:
    """Verified identity extracted from a Supabase access token."""
    id: UUID
    email: Optional[str] = None


def _get_jwks_client() -> PyJWKClient:
    """PyJWKClient for the Supabase JWKS endpoint (keys cached internally)."""
    global _jwks_client
    if _jwks_client is None:
        settings = get_settings()
        _jwks_client = PyJWKClient(
            f"{settings.supabase_url}/auth/v1/.well-known/jwks.json",
            cache_keys=True,
        )
    return _jwks_client


def _decode(token: str, key, algorithm: str, issuer: str) -> dict:
    return jwt.decode(
        token,
        key,
        algorithms=[algorithm],
        issuer=issuer,
        audience=AUDIENCE,
        options={"require": ["exp", "sub", "iss"]},
    )


def verify_access_token(token: str) -> dict:
    """
    Verify a Supabase access token and return its claims.

    Raises:
        HTTPException 401: expired, malformed or unverifiable token
    """
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    try:
        signing_key = _get_jwks_client().get_signing_key_from_jwt(token)
        return _decode(token, signing_key.key, "ES256", issuer)
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as e:
        logger.debug(f"JWKS verification failed, trying HS256: {e}")

    if settings.supabase_jwt_secret:
        try:
            return _decode(token, settings.supabase_jwt_secret, "HS256", issuer)
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired",
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"HS256 verification failed: {e}")

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or unverifiable token",
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """
    Require a valid bearer token.

    Raises:
        HTTPException 401: token missing or invalid
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = verify_access_token(credentials.credentials)
    try:
        user_id = UUID(str(claims.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: malformed user ID",
        )

    return AuthenticatedUser(id=user_id, email=claims.get("email"))


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthenticatedUser]:
    """Identity for guest-friendly endpoints; None without a valid token."""
    if not credentials:
        return None
    try:
        return await get_current_user(credentials)
    except HTTPException:
        return None


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
OptionalUser = Annotated[Optional[AuthenticatedUser], Depends(get_optional_user)]


async def get_current_profile(
    user: CurrentUser,
    profiles: ProfileRepoDep,
    supabase_admin: SupabaseAdminService = Depends(get_supabase_admin),
) -> Profile:
    """Profile of the caller, created with the `user` role on first sight."""
    profile = await profiles.get_by_id(user.id)
    if profile:
        return profile

    email = user.email or await supabase_admin.get_user_email(str(user.id))
    return await profiles.get_or_create(user.id, email)


CurrentProfile = Annotated[Profile, Depends(get_current_profile)]


async def require_admin(profile: CurrentProfile) -> Profile:
    """
    Require an admin profile.

    Raises:
        HTTPException 403: authenticated but not an admin
    """
    if not profile.is_admin:
        logger.warning(f"Non-admin {profile.id} attempted an admin route")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return profile


AdminProfile = Annotated[Profile, Depends(require_admin)]


async def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
) -> None:
    """
    Require `Authorization: Bearer <CRON_SECRET>`.

    Without a configured secret, cron routes are closed.
    """
    expected = get_settings().cron_secret
    provided = (authorization or "").removeprefix("Bearer ").strip()

    if not expected or not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from app.infrastructure.db.dependencies import (  # noqa: E402, F401
    SessionDep,
    ProductRepoDep,
    OrderRepoDep,
    SubscriptionRepoDep,
    SubscriptionPaymentRepoDep,
    WebhookLogRepoDep,
)


# =============================================================================
# Gateway and service providers
# =============================================================================
from app.infrastructure.media.cloudinary_service import (  # noqa: E402
    CloudinaryService,
    get_cloudinary_service,
)
from app.infrastructure.payments.mercadopago_service import (  # noqa: E402
    MercadoPagoService,
    get_mercadopago_service,
)
from app.infrastructure.payments.stripe_service import (  # noqa: E402
    StripeService,
    get_stripe_service,
)
from app.infrastructure.services.checkout_service import CheckoutService  # noqa: E402
from app.infrastructure.services.order_service import OrderService  # noqa: E402
from app.infrastructure.services.subscription_service import SubscriptionService  # noqa: E402

MercadoPagoDep = Annotated[MercadoPagoService, Depends(get_mercadopago_service)]
StripeDep = Annotated[StripeService, Depends(get_stripe_service)]
CloudinaryDep = Annotated[CloudinaryService, Depends(get_cloudinary_service)]


def get_order_service(session: SessionDep) -> OrderService:
    return OrderService(session)


def get_checkout_service(
    session: SessionDep,
    mercadopago: MercadoPagoDep,
    stripe_service: StripeDep,
) -> CheckoutService:
    return CheckoutService(session, mercadopago, stripe_service)


def get_subscription_service(
    session: SessionDep,
    mercadopago: MercadoPagoDep,
    stripe_service: StripeDep,
) -> SubscriptionService:
    return SubscriptionService(session, mercadopago, stripe_service)


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
CheckoutServiceDep = Annotated[CheckoutService, Depends(get_checkout_service)]
SubscriptionServiceDep = Annotated[SubscriptionService, Depends(get_subscription_service)]
