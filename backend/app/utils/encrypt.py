"""Fernet helpers for member API tokens kept encrypted at rest."""

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from app.config import settings


def get_fernet(key: Optional[str] = None) -> Fernet:
    """Returns a Fernet instance for the given key, defaulting to ENCRYPTION_KEY."""
    key = key or settings.encryption_key
    if not key:
        raise ValueError("ENCRYPTION_KEY is not configured")
    return Fernet(key.encode('utf-8'))


def encrypt_token(token: str, key: Optional[str] = None) -> str:
    """Encrypts an upstream API token."""
    return get_fernet(key).encrypt(token.encode('utf-8')).decode('utf-8')


def decrypt_token(encrypted_token: str, key: Optional[str] = None) -> str:
    """Decrypts an upstream API token, raising ValueError on a bad key or ciphertext."""
    try:
        return get_fernet(key).decrypt(encrypted_token.encode('utf-8')).decode('utf-8')
    except InvalidToken as e:
        raise ValueError("Could not decrypt member token with the configured ENCRYPTION_KEY") from e
