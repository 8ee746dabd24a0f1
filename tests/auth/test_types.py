"""Tests for auth/types.py - Pydantic models for auth domain."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from pydantic import ValidationError

from auth.types import (
    MagicLinkRequest,
    RegisterRequest,
    SenderUpdateRequest,
    Tenant,
    TenantRegisterRequest,
    TokenRequest,
    User,
    UserRecord,
)


def make_record(**overrides) -> UserRecord:
    fields = {
        "id": uuid4(),
        "tenant_id": uuid4(),
        "email": "test@example.com",
        "email_verified": False,
        "created_at": datetime.now(timezone.utc),
        "password_hash": "$argon2id$v=19$m=1024,t=1,p=4$abc$def",
    }
    fields.update(overrides)
    return UserRecord(**fields)


class TestUserValidation:
    """Tests that User model rejects invalid data."""

    def test_rejects_missing_email_verified(self):
        """Verification state must be explicit (fail closed)."""
        with pytest.raises(ValidationError):
            User(
                id=uuid4(),
                tenant_id=uuid4(),
                email="test@example.com",
                created_at=datetime.now(timezone.utc),
            )

    def test_rejects_missing_tenant(self):
        with pytest.raises(ValidationError):
            User(
                id=uuid4(),
                email="test@example.com",
                email_verified=False,
                created_at=datetime.now(timezone.utc),
            )

    def test_names_default_to_none(self):
        user = make_record().public()
        assert user.first_name is None
        assert user.last_name is None


class TestUserRecord:

    def test_public_drops_password_hash(self):
        record = make_record()
        public = record.public()

        assert type(public) is User
        assert "password_hash" not in public.model_dump()
        assert public.id == record.id

    def test_has_password(self):
        assert make_record().has_password is True
        assert make_record(password_hash=None).has_password is False

    def test_hash_hidden_from_repr(self):
        assert "argon2id" not in repr(make_record())


class TestTenant:

    def test_api_key_hidden_from_repr(self):
        tenant = Tenant(
            id=uuid4(),
            name="App",
            domain="https://app.example.com",
            api_key="app_" + "a" * 64,
            created_at=datetime.now(timezone.utc),
        )
        assert "app_aaaa" not in repr(tenant)


class TestRequestValidation:
    """Request bodies reject malformed input before any flow runs."""

    def test_register_rejects_invalid_email(self):
        with pytest.raises(ValidationError):
            RegisterRequest(email="not-an-email", password="Abcdef12")

    def test_register_strips_names(self):
        body = RegisterRequest(email="a@example.com", password="Abcdef12", first_name="  Ann ")
        assert body.first_name == "Ann"

    def test_register_rejects_long_names(self):
        with pytest.raises(ValidationError):
            RegisterRequest(email="a@example.com", password="Abcdef12", last_name="x" * 51)

    def test_register_rejects_blank_names(self):
        with pytest.raises(ValidationError):
            RegisterRequest(email="a@example.com", password="Abcdef12", first_name="   ")

    def test_magic_link_rejects_invalid_email(self):
        with pytest.raises(ValidationError):
            MagicLinkRequest(email="not-an-email")

    def test_tenant_name_length(self):
        with pytest.raises(ValidationError):
            TenantRegisterRequest(name="x" * 101, domain="https://a.example.com")

    def test_token_required(self):
        with pytest.raises(ValidationError):
            TokenRequest(token="")

    def test_sender_fields_optional(self):
        body = SenderUpdateRequest()
        assert body.from_email is None
        assert body.from_name is None

    def test_sender_rejects_invalid_email(self):
        with pytest.raises(ValidationError):
            SenderUpdateRequest(from_email="nope")
