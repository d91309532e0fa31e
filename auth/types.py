"""Pydantic models for auth domain."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class Business(BaseModel):
    """A business whose contact email owns the dashboard login."""

    id: UUID
    name: str
    contact_email: str
    contact_name: str | None = None
    status: str

    model_config = {"from_attributes": True}

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class Credential(BaseModel):
    """Password record for a business contact email."""

    email: str
    password_hash: str
    failed_login_attempts: int = Field(0, ge=0)
    account_locked_until: datetime | None = None
    password_changed_at: datetime | None = None


class AdminUser(BaseModel):
    """A platform administrator."""

    id: UUID
    username: str
    email: str | None = None
    full_name: str | None = None
    role: str = "admin"
    password_hash: str
    is_active: bool = True
    failed_login_attempts: int = 0
    account_locked_until: datetime | None = None


class Session(BaseModel):
    """
    An active session.

    subject is the owner's email for owner sessions and the admin user ID
    for admin sessions.
    """

    token: str = Field(..., description="Session token (opaque string)")
    subject: str
    created_at: datetime
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None

    @property
    def max_age_seconds(self) -> int:
        return int((self.expires_at - self.created_at).total_seconds())


class MagicLinkToken(BaseModel):
    """A magic link token awaiting verification."""

    token: str = Field(..., description="URL-safe token")
    email: str
    created_at: datetime
    expires_at: datetime
    used: bool  # Required - fail closed, no default


class PasswordResetToken(BaseModel):
    """A password reset token awaiting use."""

    token: str
    email: str
    created_at: datetime
    expires_at: datetime
    used: bool
    used_at: datetime | None = None
    ip_address: str | None = None


class PasswordStrength(BaseModel):
    """Outcome of the password strength policy."""

    is_valid: bool
    errors: list[str] = []
    suggestions: list[str] = []


class AuthenticatedOwner(BaseModel):
    """Business owner info returned after successful authentication."""

    business: Business
    session: Session

    def to_user_payload(self) -> dict:
        return {
            "email": self.session.subject,
            "businessId": str(self.business.id),
            "businessName": self.business.name,
        }


class AuthenticatedAdmin(BaseModel):
    """Admin info returned after successful admin login."""

    admin: AdminUser
    session: Session


# Request bodies. Fields default to "" so missing input reaches the
# service validation and comes back as a 400 with a readable message.


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class AdminLoginRequest(BaseModel):
    username: str = ""
    password: str = ""


class MagicLinkRequest(BaseModel):
    email: str = ""


class PasswordResetRequest(BaseModel):
    email: str = ""


class PasswordResetConfirm(BaseModel):
    token: str = ""
    password: str = ""
