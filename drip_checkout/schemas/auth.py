"""Authentication schemas for admin JWT tokens."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AdminContext(BaseModel):
    """Authenticated admin for the current request.

    Populated by the auth middleware from a validated admin JWT.
    """

    model_config = ConfigDict(from_attributes=True)

    admin_id: str = Field(description="Admin identifier (from JWT sub claim)")
    email: str | None = Field(default=None, description="Admin email address if available")


class AdminTokenPayload(BaseModel):
    """Claims carried by an admin dashboard token."""

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the admin's id")
    email: str | None = Field(default=None, description="Admin email address")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int | None = Field(default=None, description="Issued at timestamp (Unix epoch)")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_admin_context(self) -> AdminContext:
        """Convert token payload to AdminContext."""
        return AdminContext(admin_id=self.sub, email=self.email)
