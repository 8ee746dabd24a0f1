"""Authentication configuration."""

from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    Built once at startup and handed to every component that needs it.
    Frozen so the signing secret and token lifetimes cannot drift at runtime.
    Durations are in minutes except the outbound call timeouts, which are seconds.
    """

    model_config = {"frozen": True}

    # Session tokens
    jwt_secret: str = Field(
        ...,
        description="HS256 signing secret for session tokens",
        min_length=32,
        repr=False,
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_issuer: str = Field(
        default="authstarter",
        description="Issuer claim stamped on and required of every session token",
    )
    session_expiry_minutes: int = Field(
        default=60,
        description="Session token lifetime",
        ge=1,
        le=43200,  # 30 days
    )

    # Single-use token lifetimes
    email_verification_expiry_minutes: int = Field(
        default=60,
        description="How long email verification links remain valid",
        ge=5,
        le=1440,
    )
    password_reset_expiry_minutes: int = Field(
        default=30,
        description="How long password reset links remain valid",
        ge=5,
        le=240,
    )
    magic_link_expiry_minutes: int = Field(
        default=15,
        description="How long magic links remain valid",
        ge=5,
        le=60,
    )

    # Email
    frontend_base_url: str = Field(
        default="http://localhost:3000",
        description="Link base for tenants without a registered domain",
    )
    default_from_email: str = Field(
        default="noreply@authstarter.dev",
        description="Sender address for tenants without custom sender branding",
    )
    email_timeout_seconds: float = Field(
        default=10,
        description="Upper bound on a single email gateway call",
        ge=1,
        le=60,
    )

    # Persistence
    store_timeout_seconds: int = Field(
        default=5,
        description="Connect and statement timeout for the credential store",
        ge=1,
        le=60,
    )
