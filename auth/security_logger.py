"""Security event logging for auth audit trail.

Append-only log to security_events table. Rows carry the tenant, the
user (when known) and a details dict naming the token kind or failure
reason. Token values, passwords and API keys are never recorded.
"""

from enum import Enum
from typing import Any
from uuid import UUID

from psycopg2.extras import Json

from auth.database import store_errors
from clients.postgres_client import PostgresClient
from utils.timezone import now_utc


class SecurityEvent(Enum):
    """Auth security event types."""

    TENANT_REGISTERED = "tenant_registered"
    USER_REGISTERED = "user_registered"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    TOKEN_ISSUED = "token_issued"
    TOKEN_REDEEMED = "token_redeemed"
    TOKEN_REJECTED = "token_rejected"
    NOTIFICATION_FAILED = "notification_failed"
    EMAIL_VERIFIED = "email_verified"
    PASSWORD_RESET = "password_reset"


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        tenant_id: UUID | None = None,
        email: str | None = None,
        user_id: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database.

        Raises:
            TransientStoreError: Insert failed on connectivity or timeout.
        """
        with store_errors():
            self._db.execute_returning(
                """INSERT INTO security_events
                   (event_type, app_id, email, user_id, details, created_at)
                   VALUES (%s, %s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    event.value,
                    str(tenant_id) if tenant_id else None,
                    email,
                    str(user_id) if user_id else None,
                    Json(details) if details else None,
                    now_utc(),
                ),
            )
