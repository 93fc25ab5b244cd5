"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from drip_checkout.api.middleware.error_handler import APIError, api_error_handler, error_handler_middleware
from drip_checkout.api.middleware.latency_logging import latency_logging_middleware
from drip_checkout.api.middleware.request_size import request_size_limit_middleware
from drip_checkout.api.routes import discounts, health, orders, webhooks
from drip_checkout.api.routes.checkout import orders_router, router as checkout_router
from drip_checkout.core.config import get_settings
from drip_checkout.core.stripe import configure_stripe

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    configure_stripe()
    logger.info("Stripe SDK configured (test mode: %s)", settings.is_stripe_test_mode)

    yield
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Drip Checkout API",
        description="Checkout, order, discount and Stripe reconciliation service for the Magic City Drip shop",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Domain errors raised inside routes
    app.add_exception_handler(APIError, api_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handler (catches everything the routes did not)
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)

    # Request size limit (rejects oversized requests early)
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_size_limit_middleware)

    # Health routes at root level (no prefix)
    app.include_router(health.router)

    api_router = APIRouter(prefix="/api")

    # Storefront checkout and payment routes
    api_router.include_router(checkout_router)
    api_router.include_router(orders_router)
    api_router.include_router(discounts.router)

    # Stripe webhooks
    api_router.include_router(webhooks.router)

    # Admin dashboard routes
    api_router.include_router(discounts.admin_router)
    api_router.include_router(orders.router)

    app.include_router(api_router)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "drip_checkout.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
