"""Unit tests for FastAPI dependency injection functions."""

import pytest

from drip_checkout.api.deps import get_current_admin
from drip_checkout.api.middleware.error_handler import AuthenticationError
from drip_checkout.schemas.auth import AdminContext
from tests.fakes import make_admin_token


class TestGetCurrentAdmin:
    """Tests for get_current_admin dependency."""

    @pytest.mark.asyncio
    async def test_extracts_admin_context(self) -> None:
        """Test get_current_admin returns the token's subject and email."""
        admin = await get_current_admin(f"Bearer {make_admin_token()}")

        assert isinstance(admin, AdminContext)
        assert admin.admin_id == "admin-1"
        assert admin.email == "admin@magiccitydrip.test"

    @pytest.mark.asyncio
    async def test_accepts_lowercase_scheme(self) -> None:
        admin = await get_current_admin(f"bearer {make_admin_token()}")

        assert admin.admin_id == "admin-1"

    @pytest.mark.asyncio
    async def test_raises_401_for_missing_header(self) -> None:
        """Test get_current_admin raises 401 when Authorization header is missing."""
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_admin("")

        assert exc_info.value.status_code == 401
        assert "Authorization header required" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_raises_401_for_invalid_header_format(self) -> None:
        # Missing "Bearer" prefix
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_admin(make_admin_token())

        assert "Invalid authorization header format" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_raises_401_for_expired_token(self) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_admin(f"Bearer {make_admin_token(expires_in=-60)}")

        assert exc_info.value.message == "Token has expired"

    @pytest.mark.asyncio
    async def test_raises_401_for_foreign_token(self) -> None:
        """Test that a token signed with another secret is rejected."""
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_admin(f"Bearer {make_admin_token(secret='someone-elses-secret')}")

        assert exc_info.value.status_code == 401
