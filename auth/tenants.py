"""Tenant registration and API key authentication."""

import logging
from urllib.parse import urlparse
from uuid import UUID

from auth.database import CredentialStore
from auth.exceptions import InvalidApiKeyError, UnknownApiKeyError, ValidationError
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.tokens import generate_api_key
from auth.types import Tenant, TenantRegistration

logger = logging.getLogger(__name__)


def normalize_domain(domain: str) -> str:
    """Lower-case an absolute http(s) URL and drop any trailing slash.

    Raises:
        ValidationError: Not an absolute http or https URL.
    """
    normalized = domain.strip().lower().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError("domain", "Domain must be a valid URL (http:// or https://)")
    return normalized


class TenantAuthenticator:
    """Resolves the X-API-Key value to a tenant.

    Read-only. Must run before anything touches user records, since every
    user lookup is scoped to the resolved tenant.
    """

    def __init__(self, auth_db: CredentialStore):
        self._auth_db = auth_db

    def authenticate(self, api_key: str | None) -> Tenant:
        """Resolve API key to tenant.

        Raises:
            InvalidApiKeyError: No key supplied.
            UnknownApiKeyError: Key matches no tenant.
        """
        if not api_key:
            raise InvalidApiKeyError("X-API-Key header is required")

        tenant = self._auth_db.get_tenant_by_api_key(api_key)
        if tenant is None:
            raise UnknownApiKeyError("The provided API key is not valid")
        return tenant

    def authenticate_optional(self, api_key: str | None) -> Tenant | None:
        """Like authenticate, but no key at all yields None instead of failing.

        A key that is present must still be valid.
        """
        if not api_key:
            return None
        return self.authenticate(api_key)


class TenantService:
    """Self-service tenant registration and sender branding."""

    def __init__(self, auth_db: CredentialStore, security_logger: SecurityLogger):
        self._auth_db = auth_db
        self._security_logger = security_logger

    def register(self, name: str, domain: str) -> TenantRegistration:
        """Create tenant with a fresh API key.

        Raises:
            ValidationError: Name empty or domain not an http(s) URL.
            DomainAlreadyRegisteredError: Domain taken by another tenant.
        """
        name = name.strip()
        if not name:
            raise ValidationError("name", "App name is required")
        domain = normalize_domain(domain)

        tenant = self._auth_db.create_tenant(name=name, domain=domain, api_key=generate_api_key())

        self._security_logger.log(
            SecurityEvent.TENANT_REGISTERED,
            tenant_id=tenant.id,
            details={"domain": tenant.domain},
        )
        logger.info(f"Tenant registered: {tenant.id}")

        return TenantRegistration(
            tenant_id=tenant.id,
            name=tenant.name,
            domain=tenant.domain,
            api_key=tenant.api_key,
            created_at=tenant.created_at,
        )

    def update_sender(
        self, tenant_id: UUID, from_email: str | None, from_name: str | None
    ) -> Tenant:
        """Set or clear the tenant's custom sender address and display name.

        Raises:
            UnknownApiKeyError: The tenant was deleted after its API key was
                resolved. The key no longer names a tenant, which is the same
                answer the API key gate gives on the next request.
        """
        tenant = self._auth_db.update_tenant_sender(
            tenant_id,
            from_email.lower() if from_email else None,
            from_name,
        )
        if tenant is None:
            raise UnknownApiKeyError("The provided API key is not valid")
        return tenant
