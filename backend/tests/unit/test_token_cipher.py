"""Tests for encryption of OAuth tokens at rest."""

from unittest.mock import patch

import pytest
from cryptography.fernet import Fernet

from config import settings
from services.token_cipher import TokenCipher, TokenDecryptionError, get_token_cipher


class TestTokenCipher:
    def test_encrypted_value_is_not_plaintext(self, token_cipher):
        encrypted = token_cipher.encrypt("access-token")
        assert encrypted != "access-token"
        assert "access-token" not in encrypted
        assert token_cipher.decrypt(encrypted) == "access-token"

    def test_none_passes_through(self, token_cipher):
        assert token_cipher.encrypt(None) is None
        assert token_cipher.decrypt(None) is None

    def test_wrong_key_raises(self, token_cipher):
        other = TokenCipher(Fernet.generate_key())
        with pytest.raises(TokenDecryptionError):
            other.decrypt(token_cipher.encrypt("secret"))

    def test_generate_key_is_usable(self):
        cipher = TokenCipher(TokenCipher.generate_key())
        assert cipher.decrypt(cipher.encrypt("x")) == "x"


class TestGetTokenCipher:
    def test_uses_configured_key(self, token_cipher):
        cipher = get_token_cipher()
        assert cipher.decrypt(token_cipher.encrypt("abc")) == "abc"

    def test_generates_and_stores_key_when_unset(self, monkeypatch):
        monkeypatch.setattr(settings, "TOKEN_ENCRYPTION_KEY", "")
        get_token_cipher.cache_clear()

        with patch("services.token_cipher.set_credential", return_value=True) as mock_set:
            cipher = get_token_cipher()

        mock_set.assert_called_once()
        key_name, key_value = mock_set.call_args.args
        assert key_name == "TOKEN_ENCRYPTION_KEY"
        assert TokenCipher(key_value).decrypt(cipher.encrypt("t")) == "t"

    def test_cached(self):
        assert get_token_cipher() is get_token_cipher()
