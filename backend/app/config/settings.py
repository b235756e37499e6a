"""
Application Settings for the Pet Gourmet store backend

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    PAYMENT_TEST_MODE short-circuits Mercado Pago preference creation
    so checkout can be exercised without real credentials.
    """

    # Supabase Configuration
    supabase_url: str = "http://localhost:54321"
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    app_url: str = "http://localhost:3000"

    # CORS Configuration
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Mercado Pago (regional gateway)
    mercadopago_access_token: Optional[str] = None
    mercadopago_webhook_secret: Optional[str] = None
    mercadopago_api_url: str = "https://api.mercadopago.com"

    # Stripe (card-network checkout)
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    # Cloudinary (media CDN)
    cloudinary_cloud_name: Optional[str] = None
    cloudinary_api_key: Optional[str] = None
    cloudinary_api_secret: Optional[str] = None
    cloudinary_folder: str = "products"

    # Store rules
    store_currency: str = "MXN"
    free_shipping_threshold: float = 1000.0
    shipping_cost: float = 100.0
    stale_order_days: int = 3
    payment_test_mode: bool = False

    # Cron endpoints
    cron_secret: Optional[str] = None

    # Rate Limiting (requests per window, per client IP)
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    rate_limit_checkout_requests: int = 10
    rate_limit_webhook_requests: int = 300

    # Retry Configuration (gateway calls)
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    gateway_timeout_seconds: float = 30.0

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_payment_keys(self) -> "Settings":
        """Require gateway credentials in production unless test mode is on."""
        if self.environment.lower() == "production" and not self.payment_test_mode:
            missing = [
                name
                for name, value in (
                    ("MERCADOPAGO_ACCESS_TOKEN", self.mercadopago_access_token),
                    ("STRIPE_SECRET_KEY", self.stripe_secret_key),
                    ("CRON_SECRET", self.cron_secret),
                )
                if not value
            ]
            if missing:
                raise ValueError(
                    f"Missing required production settings: {', '.join(missing)}"
                )

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def mercadopago_webhook_url(self) -> str:
        """Notification URL handed to Mercado Pago on every preference."""
        return f"{self.app_url.rstrip('/')}/api/webhooks/mercadopago"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
