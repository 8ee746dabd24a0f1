"""Tests for VaultClient - HashiCorp Vault secrets management.

hvac.Client is replaced with a MagicMock; no Vault server is needed.
"""

from unittest.mock import MagicMock

import hvac
import pytest
from hvac.exceptions import Forbidden, InvalidPath

import clients.vault_client as vault_module
from clients.vault_client import (
    VaultClient,
    VaultError,
    get_database_url,
    get_email_config,
    get_jwt_secret,
)

SECRETS = {
    "authstarter/database": {"url": "postgresql://auth@db/auth"},
    "authstarter/jwt": {"secret": "x" * 48},
    "authstarter/email": {
        "gateway_url": "https://mail.internal/send",
        "api_key": "gw-key",
        "hmac_secret": "gw-hmac",
    },
}


@pytest.fixture
def vault_env(monkeypatch):
    monkeypatch.setenv("VAULT_ADDR", "https://vault.internal:8200")
    monkeypatch.setenv("VAULT_ROLE_ID", "role")
    monkeypatch.setenv("VAULT_SECRET_ID", "secret")
    monkeypatch.delenv("VAULT_NAMESPACE", raising=False)


@pytest.fixture
def hvac_client(monkeypatch, vault_env):
    client = MagicMock()
    client.is_authenticated.return_value = True
    client.auth.approle.login.return_value = {"auth": {"client_token": "s.token"}}

    def read_secret_version(path, raise_on_deleted_version):
        if path not in SECRETS:
            raise InvalidPath(path)
        return {"data": {"data": SECRETS[path]}}

    client.secrets.kv.v2.read_secret_version.side_effect = read_secret_version
    monkeypatch.setattr(hvac, "Client", MagicMock(return_value=client))
    return client


@pytest.fixture(autouse=True)
def reset_vault_singleton():
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()
    yield
    vault_module._vault_client_instance = None
    vault_module._secret_cache.clear()


class TestVaultClientInit:
    """Initialization and authentication."""

    def test_missing_vault_addr_raises(self, monkeypatch, vault_env):
        """VAULT_ADDR required."""
        monkeypatch.delenv("VAULT_ADDR")
        with pytest.raises(ValueError, match="VAULT_ADDR"):
            VaultClient()

    def test_missing_approle_credentials_raises(self, monkeypatch, vault_env):
        """VAULT_ROLE_ID and VAULT_SECRET_ID required."""
        monkeypatch.delenv("VAULT_ROLE_ID")
        with pytest.raises(ValueError, match="VAULT_ROLE_ID"):
            VaultClient()

    def test_valid_approle_authenticates(self, hvac_client):
        client = VaultClient()

        hvac_client.auth.approle.login.assert_called_once_with(role_id="role", secret_id="secret")
        assert client.client.token == "s.token"

    def test_rejected_approle_raises_vault_error(self, hvac_client):
        hvac_client.auth.approle.login.side_effect = Forbidden("denied")

        with pytest.raises(VaultError, match="AppRole"):
            VaultClient()


class TestGetSecret:
    """Secret retrieval - paths automatically scoped to authstarter/."""

    def test_returns_field_value(self, hvac_client):
        assert VaultClient().get_secret("database", "url") == "postgresql://auth@db/auth"

    def test_missing_path_raises(self, hvac_client):
        with pytest.raises(VaultError, match="not found"):
            VaultClient().get_secret("nonexistent", "field")

    def test_missing_field_raises_keyerror(self, hvac_client):
        with pytest.raises(KeyError, match="not found"):
            VaultClient().get_secret("database", "nonexistent_field")


class TestConvenienceFunctions:
    """Module-level convenience functions."""

    def test_get_jwt_secret(self, hvac_client):
        assert get_jwt_secret() == "x" * 48

    def test_get_email_config(self, hvac_client):
        assert get_email_config() == SECRETS["authstarter/email"]

    def test_secrets_cached(self, hvac_client):
        get_database_url()
        get_database_url()

        assert hvac_client.secrets.kv.v2.read_secret_version.call_count == 1
