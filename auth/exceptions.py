"""Typed exceptions for auth failures."""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class ValidationError(AuthError):
    """
    Input is malformed.

    Carries field-level detail as a list of {"field", "message"} dicts.
    """

    def __init__(self, field: str, message: str):
        self.errors = [{"field": field, "message": message}]
        super().__init__(message)


# Tenant gate


class InvalidApiKeyError(AuthError):
    """No API key was supplied."""


class UnknownApiKeyError(AuthError):
    """API key does not belong to any tenant."""


class DomainAlreadyRegisteredError(AuthError):
    """Another tenant already registered this domain."""


# Identity


class UserAlreadyExistsError(AuthError):
    """Email is already registered within this tenant."""


class InvalidCredentialsError(AuthError):
    """
    Email/password pair did not match.

    Raised both for unknown emails and wrong passwords so callers
    cannot tell the two apart.
    """


class PasswordNotSetError(AuthError):
    """Account exists but only signs in with magic links."""


class InvalidOrExpiredTokenError(AuthError):
    """
    Single-use token is wrong, expired, or already redeemed.

    Used for email verification, password reset and magic link tokens alike.
    Never narrowed further in user-facing responses.
    """


# Session tokens


class TokenExpiredError(AuthError):
    """Signed session token is past its expiry."""


class TokenInvalidError(AuthError):
    """Signed session token is malformed or its signature/claims do not verify."""


class UnauthenticatedError(AuthError):
    """No usable bearer token on a protected request."""


class SessionExpiredError(UnauthenticatedError):
    """Bearer token was valid but has expired. User must sign in again."""


class UserNotFoundError(AuthError):
    """
    Session token refers to a user that no longer exists.

    Note: Never raised from email lookups; those fail uniformly instead.
    """


class EmailNotVerifiedError(AuthError):
    """Resource requires a verified email address."""


# Infrastructure


class NotificationDeliveryError(AuthError):
    """Email could not be handed to the gateway."""


class TransientStoreError(AuthError):
    """Credential store timed out or is unreachable. Safe to retry."""
