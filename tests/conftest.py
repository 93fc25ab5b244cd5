"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("ADMIN_JWT_SECRET", "test-admin-jwt-secret")

from tests.fakes import FakeSupabase, make_admin_token  # noqa: E402

SUPABASE_CLIENT_TARGETS = (
    "drip_checkout.core.supabase.get_supabase_client",
    "drip_checkout.services.order_service.get_supabase_client",
    "drip_checkout.services.discount_service.get_supabase_client",
    "drip_checkout.services.catalog_service.get_supabase_client",
    "drip_checkout.services.webhook_service.get_supabase_client",
)


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from drip_checkout.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> Generator[FakeSupabase, None, None]:
    """Provide an in-memory Supabase wired into every service.

    Yields:
        FakeSupabase: The fake database shared by all services in the test.
    """
    db = FakeSupabase()
    patchers = [patch(target, return_value=db) for target in SUPABASE_CLIENT_TARGETS]
    for patcher in patchers:
        patcher.start()
    yield db
    for patcher in patchers:
        patcher.stop()


@pytest.fixture
def mock_stripe() -> Generator[MagicMock, None, None]:
    """Provide a mocked Stripe module for session create/retrieve.

    Webhook verification is left to the real SDK in route tests, which
    sign their payloads with the configured secret.

    Yields:
        MagicMock: Mocked Stripe module.
    """
    mock = MagicMock()
    mock.checkout.Session.create.return_value = SimpleNamespace(
        id="cs_test_session_1",
        url="https://checkout.stripe.com/c/pay/cs_test_session_1",
    )
    with patch("drip_checkout.services.payment_gateway.get_stripe", return_value=mock):
        yield mock


@pytest.fixture
def client(fake_db: FakeSupabase) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        fake_db: In-memory Supabase fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from drip_checkout.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Authorization header carrying a valid admin token."""
    return {"Authorization": f"Bearer {make_admin_token()}"}
