"""Identity manager - user lifecycle within a tenant.

Handles:
- Password registration and login
- Email verification
- Forgot/reset password (with enumeration protection)
- Magic link request and redemption

Every operation takes the tenant resolved from the caller's API key;
no user record is ever read or written outside that tenant.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from auth.config import AuthConfig
from auth.database import CredentialStore
from auth.exceptions import (
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    NotificationDeliveryError,
    PasswordNotSetError,
    TransientStoreError,
    UserAlreadyExistsError,
)
from auth.notifications import NotificationDispatcher
from auth.passwords import PasswordHasher, check_password_policy
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionIssuer
from auth.tokens import generate_opaque_token
from auth.types import AuthenticatedUser, Tenant, TokenKind, User, UserRecord
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)


@dataclass
class MagicLinkResult:
    """Result of magic link request."""

    is_new_user: bool


@dataclass(frozen=True)
class TokenPolicy:
    """How long a token kind lives and whether redeeming it proves inbox ownership."""

    ttl_setting: str  # AuthConfig field, minutes
    marks_email_verified: bool


TOKEN_POLICIES: dict[TokenKind, TokenPolicy] = {
    TokenKind.EMAIL_VERIFICATION: TokenPolicy("email_verification_expiry_minutes", True),
    TokenKind.PASSWORD_RESET: TokenPolicy("password_reset_expiry_minutes", False),
    TokenKind.MAGIC_LINK: TokenPolicy("magic_link_expiry_minutes", True),
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


class IdentityManager:
    """Orchestrates password, verification, reset and magic link flows."""

    def __init__(
        self,
        config: AuthConfig,
        auth_db: CredentialStore,
        session_issuer: SessionIssuer,
        notifier: NotificationDispatcher,
        security_logger: SecurityLogger,
        password_hasher: PasswordHasher | None = None,
    ):
        self._config = config
        self._auth_db = auth_db
        self._session_issuer = session_issuer
        self._notifier = notifier
        self._security_logger = security_logger
        self._hasher = password_hasher or PasswordHasher()

    def _log_committed(self, event: SecurityEvent, **fields) -> None:
        """Record an event for a change that is already committed.

        The change cannot be replayed (a redeemed token is gone), so a failed
        audit write is logged and the caller still gets its result.
        """
        try:
            self._security_logger.log(event, **fields)
        except TransientStoreError:
            logger.exception(f"Security event {event.value} not recorded")

    # -------------------------------------------------------------------------
    # Single-use token slots
    # -------------------------------------------------------------------------

    def issue_token(self, tenant: Tenant, user: User, kind: TokenKind) -> str:
        """Generate a token for kind and store it in the user's slot.

        Overwrites any earlier token of the same kind, expired or not.
        """
        policy = TOKEN_POLICIES[kind]
        token = generate_opaque_token()
        expires_at = now_utc() + timedelta(minutes=getattr(self._config, policy.ttl_setting))

        self._auth_db.set_token(user.id, kind, token, expires_at)

        self._log_committed(
            SecurityEvent.TOKEN_ISSUED,
            tenant_id=tenant.id,
            email=user.email,
            user_id=user.id,
            details={"kind": kind.value},
        )
        return token

    def redeem_token(self, tenant: Tenant, kind: TokenKind, token: str, **changes) -> UserRecord:
        """Consume token and apply the kind's changes plus any extra column changes.

        Wrong, expired and already-used tokens all fail the same way.

        Raises:
            InvalidOrExpiredTokenError: Nothing in this tenant holds a live copy of token.
        """
        if TOKEN_POLICIES[kind].marks_email_verified:
            changes["email_verified"] = True

        user = self._auth_db.redeem_token(tenant.id, kind, token, now_utc(), changes)

        if user is None:
            self._security_logger.log(
                SecurityEvent.TOKEN_REJECTED,
                tenant_id=tenant.id,
                details={"kind": kind.value},
            )
            raise InvalidOrExpiredTokenError("Token is invalid or has expired")

        self._log_committed(
            SecurityEvent.TOKEN_REDEEMED,
            tenant_id=tenant.id,
            email=user.email,
            user_id=user.id,
            details={"kind": kind.value},
        )
        return user

    # -------------------------------------------------------------------------
    # Password accounts
    # -------------------------------------------------------------------------

    def register(
        self,
        tenant: Tenant,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Create password account and send verification email.

        A failed verification email does not fail registration; the account
        simply stays unverified.

        Raises:
            ValidationError: Password breaks policy.
            UserAlreadyExistsError: Email already registered in tenant.
        """
        email = normalize_email(email)
        check_password_policy(password)

        if self._auth_db.get_user_by_email(tenant.id, email) is not None:
            raise UserAlreadyExistsError("A user with this email address already exists")

        user = self._auth_db.create_user(
            tenant.id,
            email,
            password_hash=self._hasher.hash(password),
            first_name=first_name,
            last_name=last_name,
        )

        self._log_committed(
            SecurityEvent.USER_REGISTERED,
            tenant_id=tenant.id,
            email=user.email,
            user_id=user.id,
            details={"method": "password"},
        )

        token = self.issue_token(tenant, user, TokenKind.EMAIL_VERIFICATION)
        try:
            self._notifier.send_verification(tenant, user, token)
        except NotificationDeliveryError:
            logger.exception(f"Verification email failed for user {user.id}; registration kept")
            self._log_committed(
                SecurityEvent.NOTIFICATION_FAILED,
                tenant_id=tenant.id,
                email=user.email,
                user_id=user.id,
                details={"kind": TokenKind.EMAIL_VERIFICATION.value},
            )

        return user.public()

    def login(self, tenant: Tenant, email: str, password: str) -> AuthenticatedUser:
        """Check password and issue a session token.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password.
            PasswordNotSetError: Account only signs in with magic links.
        """
        email = normalize_email(email)
        user = self._auth_db.get_user_by_email(tenant.id, email)

        if user is None:
            self._hasher.verify_dummy(password)
            self._log_login_failed(tenant, email, None, "unknown_email")
            raise InvalidCredentialsError("Invalid email or password")

        if not user.has_password:
            self._log_login_failed(tenant, email, user, "password_not_set")
            raise PasswordNotSetError(
                "This account uses magic link sign-in. Request a magic link instead"
            )

        if not self._hasher.verify(user.password_hash, password):
            self._log_login_failed(tenant, email, user, "wrong_password")
            raise InvalidCredentialsError("Invalid email or password")

        session = self._session_issuer.issue(user)

        self._security_logger.log(
            SecurityEvent.LOGIN_SUCCEEDED,
            tenant_id=tenant.id,
            email=user.email,
            user_id=user.id,
            details={"method": "password"},
        )
        return AuthenticatedUser(user=user.public(), session=session)

    def _log_login_failed(
        self, tenant: Tenant, email: str, user: UserRecord | None, reason: str
    ) -> None:
        self._security_logger.log(
            SecurityEvent.LOGIN_FAILED,
            tenant_id=tenant.id,
            email=email,
            user_id=user.id if user else None,
            details={"reason": reason},
        )

    def verify_email(self, tenant: Tenant, token: str) -> User:
        """Redeem email verification token.

        Raises:
            InvalidOrExpiredTokenError: Token not live in this tenant.
        """
        user = self.redeem_token(tenant, TokenKind.EMAIL_VERIFICATION, token)
        self._log_committed(
            SecurityEvent.EMAIL_VERIFIED,
            tenant_id=tenant.id,
            email=user.email,
            user_id=user.id,
        )
        return user.public()

    def forgot_password(self, tenant: Tenant, email: str) -> str:
        """Send reset link if the email has an account.

        Returns the same message whether or not the account exists.

        Raises:
            NotificationDeliveryError: Account exists but the email could not be sent.
        """
        user = self._auth_db.get_user_by_email(tenant.id, normalize_email(email))

        if user is not None:
            token = self.issue_token(tenant, user, TokenKind.PASSWORD_RESET)
            try:
                self._notifier.send_password_reset(tenant, user, token)
            except NotificationDeliveryError:
                self._security_logger.log(
                    SecurityEvent.NOTIFICATION_FAILED,
                    tenant_id=tenant.id,
                    email=user.email,
                    user_id=user.id,
                    details={"kind": TokenKind.PASSWORD_RESET.value},
                )
                raise

        return FORGOT_PASSWORD_MESSAGE

    def reset_password(self, tenant: Tenant, token: str, new_password: str) -> User:
        """Redeem reset token and set new password.

        The password is checked before the token is touched, so a rejected
        password leaves the token usable. Existing sessions stay valid
        until they expire.

        Raises:
            ValidationError: New password breaks policy.
            InvalidOrExpiredTokenError: Token not live in this tenant.
        """
        check_password_policy(new_password)

        user = self.redeem_token(
            tenant,
            TokenKind.PASSWORD_RESET,
            token,
            password_hash=self._hasher.hash(new_password),
        )

        self._log_committed(
            SecurityEvent.PASSWORD_RESET,
            tenant_id=tenant.id,
            email=user.email,
            user_id=user.id,
        )
        return user.public()

    # -------------------------------------------------------------------------
    # Magic links
    # -------------------------------------------------------------------------

    def request_magic_link(
        self,
        tenant: Tenant,
        email: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> MagicLinkResult:
        """Create passwordless user if needed, then email a magic link.

        Names are only used when the user is created.

        Raises:
            NotificationDeliveryError: Email could not be sent. The link is the
                only way to the token, so this is never swallowed.
        """
        user, created = self._auth_db.get_or_create_user(
            tenant.id,
            normalize_email(email),
            first_name=first_name,
            last_name=last_name,
        )

        if created:
            self._security_logger.log(
                SecurityEvent.USER_REGISTERED,
                tenant_id=tenant.id,
                email=user.email,
                user_id=user.id,
                details={"method": "magic_link"},
            )

        token = self.issue_token(tenant, user, TokenKind.MAGIC_LINK)
        try:
            self._notifier.send_magic_link(tenant, user, token, is_new_user=created)
        except NotificationDeliveryError:
            self._security_logger.log(
                SecurityEvent.NOTIFICATION_FAILED,
                tenant_id=tenant.id,
                email=user.email,
                user_id=user.id,
                details={"kind": TokenKind.MAGIC_LINK.value},
            )
            raise

        return MagicLinkResult(is_new_user=created)

    def verify_magic_link(self, tenant: Tenant, token: str) -> AuthenticatedUser:
        """Redeem magic link: marks email verified and signs the user in.

        Raises:
            InvalidOrExpiredTokenError: Token not live in this tenant.
        """
        user = self.redeem_token(tenant, TokenKind.MAGIC_LINK, token)
        session = self._session_issuer.issue(user)

        self._log_committed(
            SecurityEvent.LOGIN_SUCCEEDED,
            tenant_id=tenant.id,
            email=user.email,
            user_id=user.id,
            details={"method": "magic_link"},
        )
        return AuthenticatedUser(user=user.public(), session=session)
