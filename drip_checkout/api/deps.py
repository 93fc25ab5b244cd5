"""FastAPI dependency injection functions."""

import logging
from typing import Annotated

from fastapi import Depends, Header

from drip_checkout.api.middleware.auth import AuthError, AuthErrorCode, decode_admin_token
from drip_checkout.api.middleware.error_handler import AuthenticationError
from drip_checkout.schemas.auth import AdminContext

logger = logging.getLogger(__name__)


async def get_current_admin(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> AdminContext:
    """Extract and validate the admin from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        AdminContext: The authenticated admin.

    Raises:
        AuthenticationError: 401 if the token is missing, malformed, invalid or expired.
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    # Extract the token from "Bearer <token>" format
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format. Expected: Bearer <token>")

    try:
        payload = decode_admin_token(parts[1])
    except AuthError as e:
        if e.code == AuthErrorCode.NOT_CONFIGURED:
            logger.error("Admin request rejected: ADMIN_JWT_SECRET is not set")
        raise AuthenticationError(e.message) from e

    return payload.to_admin_context()


# Type alias for cleaner dependency injection
CurrentAdmin = Annotated[AdminContext, Depends(get_current_admin)]
