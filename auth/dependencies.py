"""FastAPI dependencies for the tenant and session gates.

Routes receive the resolved Tenant / UserContext as parameters instead of
reading them off request.state, so the tenant is passed explicitly into
every identity operation.
"""

from fastapi import Header

from auth.session import SessionIssuer
from auth.tenants import TenantAuthenticator
from auth.types import Tenant, UserContext


def extract_bearer(authorization: str | None) -> str | None:
    """Token from an 'Authorization: Bearer <token>' header, else None."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class RequestGates:
    """Bound-method dependencies: Depends(gates.require_tenant) etc."""

    def __init__(self, tenant_authenticator: TenantAuthenticator, session_issuer: SessionIssuer):
        self._tenants = tenant_authenticator
        self._sessions = session_issuer

    def require_tenant(self, x_api_key: str | None = Header(default=None)) -> Tenant:
        """Tenant for the X-API-Key header. Fails when missing or unknown."""
        return self._tenants.authenticate(x_api_key)

    def optional_tenant(self, x_api_key: str | None = Header(default=None)) -> Tenant | None:
        """Tenant for the X-API-Key header, or None when no key was sent."""
        return self._tenants.authenticate_optional(x_api_key)

    def current_user(
        self,
        x_api_key: str | None = Header(default=None),
        authorization: str | None = Header(default=None),
    ) -> UserContext:
        """User for the bearer token, checked against the API key's tenant if one was sent."""
        tenant = self._tenants.authenticate_optional(x_api_key)
        return self._sessions.authenticate(extract_bearer(authorization), tenant)

    def verified_user(
        self,
        x_api_key: str | None = Header(default=None),
        authorization: str | None = Header(default=None),
    ) -> UserContext:
        """current_user, additionally requiring a verified email."""
        context = self.current_user(x_api_key=x_api_key, authorization=authorization)
        return self._sessions.require_verified_email(context)
