"""Tests for SessionIssuer - bearer token issue and authentication."""

from datetime import timedelta

import pytest

from auth.exceptions import (
    EmailNotVerifiedError,
    SessionExpiredError,
    UnauthenticatedError,
    UserNotFoundError,
)
from auth.types import SessionClaims, TokenKind, UserContext
from utils.timezone import now_utc


@pytest.fixture
def user(store, tenant_a):
    return store.create_user(tenant_a.id, "alice@example.com", password_hash=None)


class TestIssue:

    def test_token_round_trips_to_user(self, session_issuer, codec, user):
        session = session_issuer.issue(user)

        claims = codec.decode(session.token)
        assert claims.user_id == user.id
        assert claims.tenant_id == user.tenant_id
        assert claims.email == user.email

    def test_no_storage_side_effects(self, session_issuer, store, user):
        before = dict(store.users)
        session_issuer.issue(user)
        assert store.users == before


class TestAuthenticate:

    def test_returns_current_user(self, session_issuer, user, tenant_a):
        token = session_issuer.issue(user).token

        context = session_issuer.authenticate(token)

        assert isinstance(context, UserContext)
        assert context.user.id == user.id
        assert context.claims.tenant_id == tenant_a.id

    def test_rereads_user_record(self, session_issuer, store, user, tenant_a):
        """Flags changed after issue are visible without a new token."""
        token = session_issuer.issue(user).token
        store.set_token(user.id, TokenKind.EMAIL_VERIFICATION, "v" * 64, now_utc() + timedelta(hours=1))
        store.redeem_token(
            tenant_a.id, TokenKind.EMAIL_VERIFICATION, "v" * 64, now_utc(), {"email_verified": True}
        )

        context = session_issuer.authenticate(token)
        assert context.user.email_verified is True

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, session_issuer, token):
        with pytest.raises(UnauthenticatedError):
            session_issuer.authenticate(token)

    def test_garbage_token(self, session_issuer):
        with pytest.raises(UnauthenticatedError) as exc_info:
            session_issuer.authenticate("not-a-token")
        assert not isinstance(exc_info.value, SessionExpiredError)

    def test_expired_token(self, session_issuer, codec, user):
        claims = SessionClaims(user_id=user.id, tenant_id=user.tenant_id, email=user.email)
        token = codec.encode(claims, now=now_utc() - timedelta(hours=2)).token

        with pytest.raises(SessionExpiredError):
            session_issuer.authenticate(token)

    def test_deleted_user(self, session_issuer, store, user):
        token = session_issuer.issue(user).token
        del store.users[user.id]

        with pytest.raises(UserNotFoundError):
            session_issuer.authenticate(token)

    def test_tenant_must_match_when_given(self, session_issuer, user, tenant_a, tenant_b):
        token = session_issuer.issue(user).token

        assert session_issuer.authenticate(token, tenant_a).user.id == user.id
        with pytest.raises(UnauthenticatedError):
            session_issuer.authenticate(token, tenant_b)


class TestRequireVerifiedEmail:

    def test_unverified_rejected(self, session_issuer, user):
        context = session_issuer.authenticate(session_issuer.issue(user).token)

        with pytest.raises(EmailNotVerifiedError):
            session_issuer.require_verified_email(context)

    def test_verified_passes_through(self, session_issuer, store, user):
        store.users[user.id] = user.model_copy(update={"email_verified": True})
        context = session_issuer.authenticate(session_issuer.issue(user).token)

        assert session_issuer.require_verified_email(context) is context
