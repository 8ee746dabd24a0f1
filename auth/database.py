"""Database operations for authentication.

Tables: apps (tenants) and users. Every user row belongs to exactly one app;
(app_id, email) is unique. Each user carries three single-use token slots
(token + expiry column pairs) that are only ever cleared by a conditional
UPDATE, so concurrent redemptions of one token cannot both succeed.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

import psycopg2
import psycopg2.errors
import psycopg2.pool

from clients.postgres_client import PostgresClient
from auth.exceptions import (
    DomainAlreadyRegisteredError,
    TransientStoreError,
    UserAlreadyExistsError,
)
from auth.types import Tenant, TokenKind, UserRecord
from utils.timezone import to_utc

logger = logging.getLogger(__name__)

# Slot columns per token kind
TOKEN_COLUMNS: dict[TokenKind, tuple[str, str]] = {
    TokenKind.EMAIL_VERIFICATION: ("email_verification_token", "email_verification_expires"),
    TokenKind.PASSWORD_RESET: ("password_reset_token", "password_reset_expires"),
    TokenKind.MAGIC_LINK: ("magic_link_token", "magic_link_expires"),
}

# Columns a redemption may change alongside clearing its slot
REDEMPTION_COLUMNS = frozenset({"email_verified", "password_hash"})

_TENANT_COLUMNS = "id, name, domain, api_key, from_email, from_name, created_at"
_USER_COLUMNS = (
    "id, app_id, email, password_hash, first_name, last_name, email_verified, created_at"
)


class CredentialStore(Protocol):
    """Reads and writes tenant and user records. All user access is tenant-scoped."""

    def create_tenant(self, name: str, domain: str, api_key: str) -> Tenant: ...

    def get_tenant_by_api_key(self, api_key: str) -> Tenant | None: ...

    def update_tenant_sender(
        self, tenant_id: UUID, from_email: str | None, from_name: str | None
    ) -> Tenant | None: ...

    def create_user(
        self,
        tenant_id: UUID,
        email: str,
        password_hash: str | None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserRecord: ...

    def get_or_create_user(
        self,
        tenant_id: UUID,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> tuple[UserRecord, bool]: ...

    def get_user_by_email(self, tenant_id: UUID, email: str) -> UserRecord | None: ...

    def get_user_by_id(self, tenant_id: UUID, user_id: UUID) -> UserRecord | None: ...

    def set_token(
        self, user_id: UUID, kind: TokenKind, token: str, expires_at: datetime
    ) -> None: ...

    def redeem_token(
        self,
        tenant_id: UUID,
        kind: TokenKind,
        token: str,
        now: datetime,
        changes: dict[str, Any],
    ) -> UserRecord | None: ...

    def ping(self) -> bool: ...


def _uuid(value: Any) -> UUID:
    return UUID(value) if isinstance(value, str) else value


def _row_to_tenant(row: dict) -> Tenant:
    return Tenant(
        id=_uuid(row["id"]),
        name=row["name"],
        domain=row["domain"],
        api_key=row["api_key"],
        from_email=row["from_email"],
        from_name=row["from_name"],
        created_at=to_utc(row["created_at"]),
    )


def _row_to_user(row: dict) -> UserRecord:
    return UserRecord(
        id=_uuid(row["id"]),
        tenant_id=_uuid(row["app_id"]),
        email=row["email"],
        password_hash=row["password_hash"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email_verified=row["email_verified"],
        created_at=to_utc(row["created_at"]),
    )


@contextmanager
def store_errors(on_conflict: Exception | None = None):
    """Translate driver failures into auth errors.

    Unique violations become on_conflict (if given). Connectivity problems,
    pool exhaustion and statement timeouts become TransientStoreError.
    """
    try:
        yield
    except psycopg2.errors.UniqueViolation as e:
        if on_conflict is None:
            raise
        raise on_conflict from e
    except (psycopg2.OperationalError, psycopg2.pool.PoolError) as e:
        logger.warning(f"Credential store unavailable: {type(e).__name__}")
        raise TransientStoreError("Credential store unavailable") from e


class AuthDatabase:
    """PostgreSQL implementation of CredentialStore."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # -------------------------------------------------------------------------
    # Tenants
    # -------------------------------------------------------------------------

    def create_tenant(self, name: str, domain: str, api_key: str) -> Tenant:
        """Insert new tenant. Domain and API key are unique across all tenants."""
        with store_errors(DomainAlreadyRegisteredError("An app with this domain already exists")):
            rows = self._db.execute_returning(
                f"""INSERT INTO apps (name, domain, api_key)
                    VALUES (%s, %s, %s)
                    RETURNING {_TENANT_COLUMNS}""",
                (name, domain, api_key),
            )
        return _row_to_tenant(rows[0])

    def get_tenant_by_api_key(self, api_key: str) -> Tenant | None:
        """Find tenant by exact API key."""
        with store_errors():
            row = self._db.execute_single(
                f"SELECT {_TENANT_COLUMNS} FROM apps WHERE api_key = %s",
                (api_key,),
            )
        return _row_to_tenant(row) if row else None

    def update_tenant_sender(
        self, tenant_id: UUID, from_email: str | None, from_name: str | None
    ) -> Tenant | None:
        """Set custom sender branding. None clears a field."""
        with store_errors():
            rows = self._db.execute_returning(
                f"""UPDATE apps SET from_email = %s, from_name = %s
                    WHERE id = %s
                    RETURNING {_TENANT_COLUMNS}""",
                (from_email, from_name, tenant_id),
            )
        return _row_to_tenant(rows[0]) if rows else None

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def create_user(
        self,
        tenant_id: UUID,
        email: str,
        password_hash: str | None,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> UserRecord:
        """Create user within tenant (email lowercased).

        Raises:
            UserAlreadyExistsError: Email already registered in this tenant.
        """
        with store_errors(UserAlreadyExistsError("A user with this email address already exists")):
            rows = self._db.execute_returning(
                f"""INSERT INTO users (app_id, email, password_hash, first_name, last_name)
                    VALUES (%s, lower(%s), %s, %s, %s)
                    RETURNING {_USER_COLUMNS}""",
                (tenant_id, email, password_hash, first_name, last_name),
            )
        return _row_to_user(rows[0])

    def get_or_create_user(
        self,
        tenant_id: UUID,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> tuple[UserRecord, bool]:
        """Get existing or create new passwordless user.

        Safe under concurrent calls for the same email: the loser of the
        insert race falls through to the select.

        Returns:
            Tuple of (user, was_created)
        """
        with store_errors():
            rows = self._db.execute_returning(
                f"""INSERT INTO users (app_id, email, first_name, last_name)
                    VALUES (%s, lower(%s), %s, %s)
                    ON CONFLICT (app_id, email) DO NOTHING
                    RETURNING {_USER_COLUMNS}""",
                (tenant_id, email, first_name, last_name),
            )
        if rows:
            return _row_to_user(rows[0]), True
        existing = self.get_user_by_email(tenant_id, email)
        if existing is None:
            raise TransientStoreError("User disappeared during upsert")
        return existing, False

    def get_user_by_email(self, tenant_id: UUID, email: str) -> UserRecord | None:
        """Find user by email (case-insensitive) within tenant."""
        with store_errors():
            row = self._db.execute_single(
                f"""SELECT {_USER_COLUMNS} FROM users
                    WHERE app_id = %s AND email = lower(%s)""",
                (tenant_id, email),
            )
        return _row_to_user(row) if row else None

    def get_user_by_id(self, tenant_id: UUID, user_id: UUID) -> UserRecord | None:
        """Find user by ID within tenant."""
        with store_errors():
            row = self._db.execute_single(
                f"SELECT {_USER_COLUMNS} FROM users WHERE app_id = %s AND id = %s",
                (tenant_id, user_id),
            )
        return _row_to_user(row) if row else None

    # -------------------------------------------------------------------------
    # Token slots
    # -------------------------------------------------------------------------

    def set_token(
        self, user_id: UUID, kind: TokenKind, token: str, expires_at: datetime
    ) -> None:
        """Store token in the user's slot for kind, replacing whatever was there."""
        token_column, expires_column = TOKEN_COLUMNS[kind]
        with store_errors():
            self._db.execute_returning(
                f"""UPDATE users SET {token_column} = %s, {expires_column} = %s
                    WHERE id = %s
                    RETURNING id""",
                (token, expires_at, user_id),
            )

    def redeem_token(
        self,
        tenant_id: UUID,
        kind: TokenKind,
        token: str,
        now: datetime,
        changes: dict[str, Any],
    ) -> UserRecord | None:
        """Consume token and apply changes in one conditional UPDATE.

        Matches only when the slot holds exactly this token and its expiry is
        strictly after now. The slot is cleared in the same statement, so a
        second attempt (concurrent or later) matches nothing.

        Returns:
            Updated user, or None if nothing matched.
        """
        unknown = set(changes) - REDEMPTION_COLUMNS
        if unknown:
            raise ValueError(f"Cannot change {sorted(unknown)} on token redemption")

        token_column, expires_column = TOKEN_COLUMNS[kind]
        assignments = [f"{token_column} = NULL", f"{expires_column} = NULL"]
        params: list[Any] = []
        for column in sorted(changes):
            assignments.append(f"{column} = %s")
            params.append(changes[column])
        params.extend([tenant_id, token, now])

        with store_errors():
            rows = self._db.execute_returning(
                f"""UPDATE users SET {", ".join(assignments)}
                    WHERE app_id = %s AND {token_column} = %s AND {expires_column} > %s
                    RETURNING {_USER_COLUMNS}""",
                tuple(params),
            )
        return _row_to_user(rows[0]) if rows else None

    def ping(self) -> bool:
        """Health check round trip."""
        with store_errors():
            return self._db.execute_scalar("SELECT 1") == 1
