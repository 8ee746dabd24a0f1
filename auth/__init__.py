"""Tenant-scoped authentication and credential issuance."""

from auth.exceptions import (
    AuthError,
    ValidationError,
    InvalidApiKeyError,
    UnknownApiKeyError,
    DomainAlreadyRegisteredError,
    UserAlreadyExistsError,
    InvalidCredentialsError,
    PasswordNotSetError,
    InvalidOrExpiredTokenError,
    UnauthenticatedError,
    SessionExpiredError,
    UserNotFoundError,
    EmailNotVerifiedError,
    NotificationDeliveryError,
    TransientStoreError,
)
from auth.types import (
    TokenKind,
    Tenant,
    TenantRegistration,
    User,
    UserRecord,
    SessionToken,
    AuthenticatedUser,
    UserContext,
)
from auth.config import AuthConfig
from auth.database import AuthDatabase, CredentialStore
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.tokens import SessionTokenCodec
from auth.passwords import PasswordHasher
from auth.tenants import TenantAuthenticator, TenantService
from auth.session import SessionIssuer
from auth.notifications import NotificationDispatcher
from auth.service import IdentityManager, MagicLinkResult
from auth.dependencies import RequestGates
from auth.api import create_apps_router, create_auth_router, create_user_router
