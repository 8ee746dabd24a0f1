"""Shared test fixtures for the auth service test suite.

Tests run without PostgreSQL, Vault or the email gateway. InMemoryCredentialStore
implements CredentialStore with the same uniqueness and single-use rules as
AuthDatabase; SQL-level behavior is covered in tests/auth/test_database.py
against a mocked PostgresClient.
"""

import re
import threading
from datetime import datetime
from typing import Any
from unittest.mock import Mock
from uuid import UUID, uuid4

import pytest

# Reset vault client singleton so no test inherits cached secrets
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from auth.config import AuthConfig
from auth.database import REDEMPTION_COLUMNS
from auth.exceptions import (
    DomainAlreadyRegisteredError,
    TransientStoreError,
    UserAlreadyExistsError,
)
from auth.notifications import NotificationDispatcher
from auth.passwords import PasswordHasher
from auth.security_logger import SecurityLogger
from auth.service import IdentityManager
from auth.session import SessionIssuer
from auth.tenants import TenantAuthenticator, TenantService
from auth.tokens import SessionTokenCodec, generate_api_key
from auth.types import Tenant, TokenKind, UserRecord
from clients.email_client import EmailGatewayClient
from utils.request_context import clear_request_id
from utils.timezone import now_utc


TEST_JWT_SECRET = "test-signing-secret-0123456789abcdef"
TEST_FRONTEND_URL = "https://frontend.test"


# =============================================================================
# IN-MEMORY CREDENTIAL STORE
# =============================================================================


class InMemoryCredentialStore:
    """Thread-safe CredentialStore kept in dicts.

    Token slots live next to each user record and are compared and cleared
    under one lock, mirroring the conditional UPDATE in AuthDatabase.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.tenants: dict[UUID, Tenant] = {}
        self.users: dict[UUID, UserRecord] = {}
        self.slots: dict[UUID, dict[TokenKind, tuple[str, datetime]]] = {}
        self.available = True

    def _check_available(self) -> None:
        if not self.available:
            raise TransientStoreError("Credential store unavailable")

    # Tenants

    def create_tenant(self, name: str, domain: str, api_key: str) -> Tenant:
        self._check_available()
        with self._lock:
            if any(t.domain == domain for t in self.tenants.values()):
                raise DomainAlreadyRegisteredError("An app with this domain already exists")
            tenant = Tenant(
                id=uuid4(),
                name=name,
                domain=domain,
                api_key=api_key,
                created_at=now_utc(),
            )
            self.tenants[tenant.id] = tenant
            return tenant

    def get_tenant_by_api_key(self, api_key: str) -> Tenant | None:
        self._check_available()
        with self._lock:
            return next((t for t in self.tenants.values() if t.api_key == api_key), None)

    def update_tenant_sender(
        self, tenant_id: UUID, from_email: str | None, from_name: str | None
    ) -> Tenant | None:
        self._check_available()
        with self._lock:
            tenant = self.tenants.get(tenant_id)
            if tenant is None:
                return None
            updated = tenant.model_copy(update={"from_email": from_email, "from_name": from_name})
            self.tenants[tenant_id] = updated
            return updated

    # Users

    def _find_user(self, tenant_id: UUID, email: str) -> UserRecord | None:
        email = email.lower()
        return next(
            (u for u in self.users.values() if u.tenant_id == tenant_id and u.email == email),
            None,
        )

    def _insert_user(self, tenant_id, email, password_hash, first_name, last_name) -> UserRecord:
        user = UserRecord(
            id=uuid4(),
            tenant_id=tenant_id,
            email=email.lower(),
            password_hash=password_hash,
            first_name=first_name,
            last_name=last_name,
            email_verified=False,
            created_at=now_utc(),
        )
        self.users[user.id] = user
        self.slots[user.id] = {}
        return user

    def create_user(
        self,
        tenant_id: UUID,
        email: str,
        password_hash: str | None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserRecord:
        self._check_available()
        with self._lock:
            if self._find_user(tenant_id, email) is not None:
                raise UserAlreadyExistsError("A user with this email address already exists")
            return self._insert_user(tenant_id, email, password_hash, first_name, last_name)

    def get_or_create_user(
        self,
        tenant_id: UUID,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> tuple[UserRecord, bool]:
        self._check_available()
        with self._lock:
            existing = self._find_user(tenant_id, email)
            if existing is not None:
                return existing, False
            return self._insert_user(tenant_id, email, None, first_name, last_name), True

    def get_user_by_email(self, tenant_id: UUID, email: str) -> UserRecord | None:
        self._check_available()
        with self._lock:
            return self._find_user(tenant_id, email)

    def get_user_by_id(self, tenant_id: UUID, user_id: UUID) -> UserRecord | None:
        self._check_available()
        with self._lock:
            user = self.users.get(user_id)
            if user is None or user.tenant_id != tenant_id:
                return None
            return user

    # Token slots

    def set_token(self, user_id: UUID, kind: TokenKind, token: str, expires_at: datetime) -> None:
        self._check_available()
        with self._lock:
            if user_id in self.users:
                self.slots[user_id][kind] = (token, expires_at)

    def redeem_token(
        self,
        tenant_id: UUID,
        kind: TokenKind,
        token: str,
        now: datetime,
        changes: dict[str, Any],
    ) -> UserRecord | None:
        self._check_available()
        unknown = set(changes) - REDEMPTION_COLUMNS
        if unknown:
            raise ValueError(f"Cannot change {sorted(unknown)} on token redemption")
        with self._lock:
            for user_id, slots in self.slots.items():
                user = self.users[user_id]
                held = slots.get(kind)
                if user.tenant_id != tenant_id or held is None:
                    continue
                held_token, expires_at = held
                if held_token == token and expires_at > now:
                    del slots[kind]
                    updated = user.model_copy(update=changes)
                    self.users[user_id] = updated
                    return updated
            return None

    def ping(self) -> bool:
        self._check_available()
        return True

    # Test helpers

    def slot(self, user_id: UUID, kind: TokenKind) -> tuple[str, datetime] | None:
        with self._lock:
            return self.slots.get(user_id, {}).get(kind)


# =============================================================================
# CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_request_context():
    """Ensure no request ID leaks between tests."""
    clear_request_id()
    yield
    clear_request_id()


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(jwt_secret=TEST_JWT_SECRET, frontend_base_url=TEST_FRONTEND_URL)


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def security_logger():
    """Mock security logger - no database writes in tests."""
    return Mock(spec=SecurityLogger)


@pytest.fixture
def email_client():
    """Mock email client - no actual emails sent in tests."""
    mock = Mock(spec=EmailGatewayClient)
    mock.send_email.return_value = None
    return mock


@pytest.fixture(scope="session")
def password_hasher() -> PasswordHasher:
    """Cheap argon2 parameters so the suite stays fast."""
    return PasswordHasher(time_cost=1, memory_cost=1024)


@pytest.fixture
def codec(config) -> SessionTokenCodec:
    return SessionTokenCodec(config)


@pytest.fixture
def session_issuer(codec, store) -> SessionIssuer:
    return SessionIssuer(codec, store)


@pytest.fixture
def notifier(email_client, config) -> NotificationDispatcher:
    return NotificationDispatcher(email_client, config)


@pytest.fixture
def tenant_service(store, security_logger) -> TenantService:
    return TenantService(store, security_logger)


@pytest.fixture
def tenant_authenticator(store) -> TenantAuthenticator:
    return TenantAuthenticator(store)


@pytest.fixture
def identity_manager(
    config, store, session_issuer, notifier, security_logger, password_hasher
) -> IdentityManager:
    return IdentityManager(
        config,
        store,
        session_issuer,
        notifier,
        security_logger,
        password_hasher=password_hasher,
    )


# =============================================================================
# TENANT FIXTURES
# =============================================================================


@pytest.fixture
def tenant_a(store) -> Tenant:
    return store.create_tenant("App A", "https://a.example.com", generate_api_key())


@pytest.fixture
def tenant_b(store) -> Tenant:
    return store.create_tenant("App B", "https://b.example.com", generate_api_key())


@pytest.fixture
def sent_token(email_client):
    """Token from the link in the most recent email sent through email_client."""

    def _token() -> str:
        text = email_client.send_email.call_args.kwargs["text"]
        match = re.search(r"token=([0-9a-f]+)", text)
        assert match, "no token link in email"
        return match.group(1)

    return _token
