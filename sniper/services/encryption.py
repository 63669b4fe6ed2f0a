"""Wallet secrets are stored Fernet-encrypted; only this module sees the key."""

import logging

from cryptography.fernet import Fernet, InvalidToken

from sniper.config import settings
from sniper.errors import EngineError

logger = logging.getLogger(__name__)

_fernet: Fernet | None = None


class SecretUnreadable(EngineError):
    """Stored ciphertext does not decrypt with the configured key."""


def _load_key() -> Fernet:
    global _fernet
    if _fernet is not None:
        return _fernet

    key = settings.encryption_key
    if not key:
        raise RuntimeError("SNIPER_ENCRYPTION_KEY is not set; wallet secrets cannot be stored or read")
    try:
        _fernet = Fernet(key)
    except ValueError as e:
        raise RuntimeError(f"SNIPER_ENCRYPTION_KEY is not a valid Fernet key: {e}") from e
    return _fernet


def encrypt_secret(secret: str) -> str:
    return _load_key().encrypt(secret.encode()).decode()


def decrypt_secret(token: str) -> str:
    """Plaintext secret. Raises SecretUnreadable if the key was rotated or the row is corrupt."""
    try:
        return _load_key().decrypt(token.encode()).decode()
    except InvalidToken as e:
        logger.error("Wallet secret failed to decrypt with the configured key")
        raise SecretUnreadable("Wallet secret could not be decrypted") from e
