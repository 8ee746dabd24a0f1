"""Session token issuance and bearer authentication.

Sessions are stateless signed tokens. Nothing is stored at issue time,
so expiry is the only way a session ends.
"""

from auth.database import CredentialStore
from auth.exceptions import (
    EmailNotVerifiedError,
    SessionExpiredError,
    TokenExpiredError,
    TokenInvalidError,
    UnauthenticatedError,
    UserNotFoundError,
)
from auth.tokens import SessionTokenCodec
from auth.types import SessionClaims, SessionToken, Tenant, User, UserContext


class SessionIssuer:
    """Turns verified identities into bearer tokens and back."""

    def __init__(self, codec: SessionTokenCodec, auth_db: CredentialStore):
        self._codec = codec
        self._auth_db = auth_db

    def issue(self, user: User) -> SessionToken:
        """Sign a session token for user. No storage side effects."""
        return self._codec.encode(
            SessionClaims(user_id=user.id, tenant_id=user.tenant_id, email=user.email)
        )

    def authenticate(self, bearer_token: str | None, tenant: Tenant | None = None) -> UserContext:
        """Verify bearer token and load the current user record.

        The user is always re-read so flags like email_verified are current.
        When the request also carried an API key, the token must belong to
        that tenant.

        Raises:
            UnauthenticatedError: Token missing, invalid, or for another tenant.
            SessionExpiredError: Token valid but expired.
            UserNotFoundError: Token refers to a deleted user.
        """
        if not bearer_token:
            raise UnauthenticatedError("No authentication token provided")

        try:
            claims = self._codec.decode(bearer_token)
        except TokenExpiredError as e:
            raise SessionExpiredError("Your session has expired. Please log in again") from e
        except TokenInvalidError as e:
            raise UnauthenticatedError("Please provide a valid authentication token") from e

        if tenant is not None and claims.tenant_id != tenant.id:
            raise UnauthenticatedError("Please provide a valid authentication token")

        record = self._auth_db.get_user_by_id(claims.tenant_id, claims.user_id)
        if record is None:
            raise UserNotFoundError("User not found")

        return UserContext(user=record.public(), claims=claims)

    def require_verified_email(self, context: UserContext) -> UserContext:
        """Gate for resources that need a confirmed inbox.

        Raises:
            EmailNotVerifiedError: User has not verified their email.
        """
        if not context.user.email_verified:
            raise EmailNotVerifiedError(
                "Please verify your email address before accessing this resource"
            )
        return context
