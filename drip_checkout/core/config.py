"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="drip-checkout", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=4000, description="Server port")
    max_request_body_size: int = Field(default=1_048_576, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:5173,http://localhost:8080,http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")

    # Stripe
    stripe_secret_key: str = Field(default="", description="Stripe secret API key")
    stripe_webhook_secret: str = Field(default="", description="Stripe webhook signing secret")
    stripe_api_version: str | None = Field(default=None, description="Pinned Stripe API version")
    stripe_min_charge_cents: int = Field(default=50, description="Smallest amount Stripe will charge, in cents")
    stripe_session_lifetime_hours: int = Field(
        default=24, description="How long a hosted Checkout Session stays open before Stripe expires it"
    )

    # Checkout
    checkout_currency: str = Field(default="eur", description="ISO currency code for new orders")
    checkout_success_url: str = Field(
        default="http://localhost:5173/order-confirmation?order_id={ORDER_ID}&session_id={CHECKOUT_SESSION_ID}",
        description="Stripe success redirect; {ORDER_ID} is substituted, {CHECKOUT_SESSION_ID} is filled by Stripe",
    )
    checkout_cancel_url: str = Field(
        default="http://localhost:5173/cart?order_id={ORDER_ID}",
        description="Stripe cancel redirect; {ORDER_ID} is substituted",
    )

    # Admin auth
    admin_jwt_secret: str = Field(default="", description="HS256 secret used to sign admin dashboard tokens")
    admin_jwt_algorithm: str = Field(default="HS256", description="Algorithm of admin dashboard tokens")

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_stripe_test_mode(self) -> bool:
        """Check if using Stripe test keys."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
