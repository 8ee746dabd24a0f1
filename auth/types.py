"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, StringConstraints

PersonName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]
TenantName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]


class TokenKind(str, Enum):
    """Single-use token slots held on every user record."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    MAGIC_LINK = "magic_link"


# =============================================================================
# RECORDS
# =============================================================================


class Tenant(BaseModel):
    """A customer application ("app") registered with the service."""

    id: UUID
    name: str
    domain: str
    api_key: str = Field(..., repr=False)
    from_email: str | None = None
    from_name: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class TenantInfo(BaseModel):
    """Tenant as shown to its own API key holder. Never includes the key."""

    id: UUID
    name: str
    domain: str
    from_email: str | None = None
    from_name: str | None = None
    created_at: datetime


class TenantRegistration(BaseModel):
    """Returned exactly once, at registration. Only place the API key is shown."""

    tenant_id: UUID
    name: str
    domain: str
    api_key: str
    created_at: datetime


class User(BaseModel):
    """An end user, scoped to exactly one tenant. Safe to return to callers."""

    id: UUID
    tenant_id: UUID
    email: str
    first_name: str | None = None
    last_name: str | None = None
    email_verified: bool  # Required - fail closed, no default
    created_at: datetime

    model_config = {"from_attributes": True}


class UserRecord(User):
    """User as stored, including the password hash. Never leaves the auth package."""

    password_hash: str | None = Field(default=None, repr=False)

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def public(self) -> User:
        return User(**self.model_dump(exclude={"password_hash"}))


# =============================================================================
# SESSIONS
# =============================================================================


class SessionClaims(BaseModel):
    """Identity carried inside a signed session token."""

    user_id: UUID
    tenant_id: UUID
    email: str


class SessionToken(BaseModel):
    """A signed bearer token and when it stops being accepted."""

    token: str = Field(..., description="Signed JWT")
    expires_at: datetime


class AuthenticatedUser(BaseModel):
    """User info returned after successful sign-in."""

    user: User
    session: SessionToken


class UserContext(BaseModel):
    """Current user resolved from a bearer token, re-read from the store."""

    user: User
    claims: SessionClaims


# =============================================================================
# REQUEST PAYLOADS
# =============================================================================


class TenantRegisterRequest(BaseModel):
    name: TenantName
    domain: str = Field(..., min_length=1, max_length=255)


class SenderUpdateRequest(BaseModel):
    from_email: EmailStr | None = None
    from_name: TenantName | None = None


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., max_length=256)
    first_name: PersonName | None = None
    last_name: PersonName | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., max_length=256)


class TokenRequest(BaseModel):
    """Body for email verification and magic link redemption."""

    token: str = Field(..., min_length=1)


class MagicLinkRequest(BaseModel):
    email: EmailStr
    first_name: PersonName | None = None
    last_name: PersonName | None = None
