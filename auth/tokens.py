"""Token generation and signing.

Two families:
- Opaque tokens: random hex strings for email verification, password reset
  and magic links. Not signed; only stored and compared.
- Session tokens: HS256 JWTs carrying user id, email and tenant id.
"""

import secrets
from datetime import datetime, timedelta
from uuid import UUID

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from auth.config import AuthConfig
from auth.exceptions import TokenExpiredError, TokenInvalidError
from auth.types import SessionClaims, SessionToken
from utils.timezone import now_utc

OPAQUE_TOKEN_BYTES = 32  # 256 bits, 64 hex chars
API_KEY_PREFIX = "app_"


def generate_opaque_token() -> str:
    """Fresh cryptographically random hex token."""
    return secrets.token_hex(OPAQUE_TOKEN_BYTES)


def generate_api_key() -> str:
    """Tenant API key: prefixed opaque token."""
    return f"{API_KEY_PREFIX}{generate_opaque_token()}"


class SessionTokenCodec:
    """Signs and verifies session JWTs with the configured secret."""

    def __init__(self, config: AuthConfig):
        self._config = config

    def encode(self, claims: SessionClaims, now: datetime | None = None) -> SessionToken:
        """Sign claims into a token that expires session_expiry_minutes from now."""
        issued_at = now or now_utc()
        expires_at = issued_at + timedelta(minutes=self._config.session_expiry_minutes)
        payload = {
            "sub": str(claims.user_id),
            "email": claims.email,
            "tenant_id": str(claims.tenant_id),
            "iss": self._config.jwt_issuer,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(
            payload,
            self._config.jwt_secret,
            algorithm=self._config.jwt_algorithm,
        )
        return SessionToken(token=token, expires_at=expires_at)

    def decode(self, token: str) -> SessionClaims:
        """Verify signature, issuer and expiry, then return the claims.

        Raises:
            TokenExpiredError: Signature is good but exp has passed.
            TokenInvalidError: Anything else wrong with the token.
        """
        try:
            payload = jwt.decode(
                token,
                self._config.jwt_secret,
                algorithms=[self._config.jwt_algorithm],
                issuer=self._config.jwt_issuer,
                options={"require_exp": True, "require_sub": True},
            )
        except ExpiredSignatureError as e:
            raise TokenExpiredError("Session token has expired") from e
        except JWTError as e:
            raise TokenInvalidError(f"Invalid session token: {e}") from e

        try:
            return SessionClaims(
                user_id=UUID(payload["sub"]),
                tenant_id=UUID(payload["tenant_id"]),
                email=payload["email"],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise TokenInvalidError("Session token is missing required claims") from e
