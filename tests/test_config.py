"""Tests for vault configuration loading."""
import pytest
from pydantic import ValidationError

from credential_vault.exceptions import ConfigurationError
from credential_vault.vault.config import (
    ENCRYPTION_KEY_ENV,
    EPHEMERAL_KEY_ENV,
    VaultConfig,
    load_encryption_key,
)
from credential_vault.vault.crypto import SecretCipher, validate_encryption_key


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv(ENCRYPTION_KEY_ENV, raising=False)
    monkeypatch.delenv(EPHEMERAL_KEY_ENV, raising=False)


class TestLoadEncryptionKey:

    def test_missing_key_fails(self):
        """Startup fails when no key is configured."""
        with pytest.raises(ConfigurationError, match=ENCRYPTION_KEY_ENV):
            load_encryption_key()

    def test_malformed_key_fails(self, monkeypatch):
        monkeypatch.setenv(ENCRYPTION_KEY_ENV, "not-a-key")
        with pytest.raises(ConfigurationError, match="64 hexadecimal"):
            load_encryption_key()

    def test_reads_key(self, monkeypatch, key_hex):
        monkeypatch.setenv(ENCRYPTION_KEY_ENV, key_hex)
        assert load_encryption_key() == key_hex

    def test_ephemeral_key_generated(self):
        key = load_encryption_key(allow_ephemeral=True)
        assert validate_encryption_key(key)


class TestVaultConfig:

    def test_from_env(self, monkeypatch, key_hex):
        monkeypatch.setenv(ENCRYPTION_KEY_ENV, key_hex)
        config = VaultConfig.from_env()
        assert config.encryption_key == key_hex
        assert config.ephemeral is False
        assert isinstance(config.cipher(), SecretCipher)

    def test_from_env_missing_key(self):
        with pytest.raises(ConfigurationError):
            VaultConfig.from_env()

    def test_from_env_ephemeral(self, monkeypatch):
        monkeypatch.setenv(EPHEMERAL_KEY_ENV, "true")
        config = VaultConfig.from_env()
        assert config.ephemeral is True
        assert validate_encryption_key(config.encryption_key)

    def test_configured_key_wins_over_ephemeral(self, monkeypatch, key_hex):
        monkeypatch.setenv(EPHEMERAL_KEY_ENV, "1")
        monkeypatch.setenv(ENCRYPTION_KEY_ENV, key_hex)
        config = VaultConfig.from_env()
        assert config.encryption_key == key_hex
        assert config.ephemeral is False

    def test_invalid_key_rejected(self):
        with pytest.raises(ValidationError):
            VaultConfig(encryption_key="abc")

    def test_key_not_in_repr(self, key_hex):
        assert key_hex not in repr(VaultConfig(encryption_key=key_hex))

    def test_cipher_roundtrip(self, key_hex):
        config = VaultConfig(encryption_key=key_hex)
        ciphertext, nonce = config.cipher().encrypt("sk-123")
        assert SecretCipher.from_hex(key_hex).decrypt(ciphertext, nonce) == "sk-123"
