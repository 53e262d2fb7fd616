"""Symmetric encryption helpers.

Two key domains share the same derivation scheme:

- secrets at rest (bank fields, identity-provider payloads), keyed from SECRET_KEY
- chat message bodies, keyed from the static shared CHAT_ENCRYPTION_KEY that
  both the server and every chat client hold
"""

import base64
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.core.config import settings

_SECRETS_SALT = b"observer_crm_secrets_v1"
_CHAT_SALT = b"observer_crm_chat_v1"


@lru_cache(maxsize=8)
def _derive_key(secret: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a secret with PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode()))


def encrypt_token(token: str) -> str:
    """Encrypt a secret value for storage.

    Args:
        token: The plaintext value to encrypt.

    Returns:
        Base64-encoded encrypted value.
    """
    if not token:
        return ""

    f = Fernet(_derive_key(settings.secret_key, _SECRETS_SALT))
    encrypted = f.encrypt(token.encode())
    return base64.urlsafe_b64encode(encrypted).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored secret value.

    Raises:
        InvalidToken: If the value cannot be decrypted.
    """
    if not encrypted_token:
        return ""

    f = Fernet(_derive_key(settings.secret_key, _SECRETS_SALT))
    encrypted = base64.urlsafe_b64decode(encrypted_token.encode())
    return f.decrypt(encrypted).decode()


def encrypt_token_or_none(token: str | None) -> str | None:
    """Encrypt a value if it exists, otherwise return None."""
    if token is None:
        return None
    return encrypt_token(token)


def decrypt_token_or_none(encrypted_token: str | None) -> str | None:
    """Decrypt a value if it exists; None when missing or undecryptable."""
    if encrypted_token is None:
        return None
    try:
        return decrypt_token(encrypted_token)
    except (InvalidToken, ValueError):
        return None


class ChatCipherError(Exception):
    """Raised when a chat body cannot be decrypted with the shared key."""


class ChatCipher:
    """Encrypts chat message bodies with a static shared secret.

    This is an obfuscation layer for bodies at rest and on the wire, not an
    end-to-end security boundary: every client holds the same key.
    """

    def __init__(self, secret: str | None = None):
        self._fernet = Fernet(
            _derive_key(secret or settings.chat_encryption_key, _CHAT_SALT)
        )

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not ciphertext:
            return ""
        try:
            return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise ChatCipherError("Chat body could not be decrypted") from e

    def decrypt_or_placeholder(self, ciphertext: str, placeholder: str = "[encrypted]") -> str:
        """Decrypt for display; never raises."""
        try:
            return self.decrypt(ciphertext)
        except ChatCipherError:
            return placeholder


@lru_cache
def get_chat_cipher() -> ChatCipher:
    """Cipher keyed from settings (singleton)."""
    return ChatCipher()
