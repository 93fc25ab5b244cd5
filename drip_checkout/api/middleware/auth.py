"""Admin JWT validation utilities."""

from enum import Enum
from typing import Any

import jwt

from drip_checkout.core.config import get_settings
from drip_checkout.schemas.auth import AdminTokenPayload


class AuthErrorCode(str, Enum):
    """Authentication error codes."""

    NOT_CONFIGURED = "NOT_CONFIGURED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class AuthError(Exception):
    """Authentication error with specific error code.

    Raised when JWT validation fails for any reason.
    The error code indicates the specific failure reason.
    """

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        """Initialize authentication error.

        Args:
            message: Human-readable error description.
            code: Specific error code for programmatic handling.
        """
        self.message = message
        self.code = code
        super().__init__(message)


def decode_admin_token(token: str) -> AdminTokenPayload:
    """Decode and validate an admin dashboard JWT.

    Tokens are signed with the shared ``ADMIN_JWT_SECRET`` and must carry
    ``sub`` and ``exp`` claims.

    Args:
        token: The JWT token string to decode.

    Returns:
        AdminTokenPayload: Validated token payload.

    Raises:
        AuthError: If the secret is unset or the token is invalid, expired,
            or has a wrong signature.
    """
    settings = get_settings()
    if not settings.admin_jwt_secret:
        raise AuthError("Admin authentication is not configured", AuthErrorCode.NOT_CONFIGURED)

    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.admin_jwt_secret,
            algorithms=[settings.admin_jwt_algorithm],
            options={
                "verify_signature": True,
                "verify_exp": True,
                "require": ["exp", "sub"],
            },
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED) from e
    except jwt.InvalidSignatureError as e:
        raise AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE) from e
    except jwt.MissingRequiredClaimError as e:
        raise AuthError(f"Token missing required claim: {e}", AuthErrorCode.INVALID_TOKEN) from e
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}", AuthErrorCode.INVALID_TOKEN) from e

    return AdminTokenPayload(
        sub=str(payload["sub"]),
        email=payload.get("email"),
        exp=payload["exp"],
        iat=payload.get("iat"),
    )
