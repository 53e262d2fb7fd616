"""Tests for secret-at-rest encryption and the shared chat cipher."""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from app.core.encryption import (
    ChatCipher,
    ChatCipherError,
    decrypt_token,
    decrypt_token_or_none,
    encrypt_token,
    encrypt_token_or_none,
)


class TestSecretsAtRest:
    def test_round_trip(self):
        encrypted = encrypt_token("1234-5678-90")
        assert encrypted != "1234-5678-90"
        assert decrypt_token(encrypted) == "1234-5678-90"

    def test_empty_values_stay_empty(self):
        assert encrypt_token("") == ""
        assert decrypt_token("") == ""

    def test_optional_helpers(self):
        assert encrypt_token_or_none(None) is None
        assert decrypt_token_or_none(None) is None
        assert decrypt_token_or_none("not-a-token") is None
        assert decrypt_token_or_none(encrypt_token_or_none("acct")) == "acct"


class TestChatCipher:
    @given(st.text(min_size=1, max_size=200))
    @settings(max_examples=50, deadline=None)
    def test_any_text_survives(self, text):
        cipher = ChatCipher("shared-secret")
        assert cipher.decrypt(cipher.encrypt(text)) == text

    def test_ciphertext_hides_plaintext(self):
        cipher = ChatCipher("shared-secret")
        assert "polling station" not in cipher.encrypt("meet at the polling station")

    def test_clients_with_same_secret_interoperate(self):
        sender, reader = ChatCipher("shared-secret"), ChatCipher("shared-secret")
        assert reader.decrypt(sender.encrypt("hello")) == "hello"

    def test_wrong_key_raises(self):
        ciphertext = ChatCipher("shared-secret").encrypt("hello")
        with pytest.raises(ChatCipherError):
            ChatCipher("other-secret").decrypt(ciphertext)

    def test_placeholder_instead_of_error(self):
        cipher = ChatCipher("shared-secret")
        assert cipher.decrypt_or_placeholder("garbage") == "[encrypted]"
        assert cipher.decrypt_or_placeholder("garbage", placeholder="?") == "?"

    def test_empty_body(self):
        cipher = ChatCipher("shared-secret")
        assert cipher.encrypt("") == ""
        assert cipher.decrypt("") == ""
