"""
Encryption utilities for the stored provider API key.
Uses Fernet symmetric encryption with the configured ENCRYPTION_KEY.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def _get_fernet():
    """Get a Fernet cipher using the configured encryption key."""
    from cryptography.fernet import Fernet
    from autoblog.config import get_settings
    settings = get_settings()

    key = settings.encryption_key
    if not key:
        logger.warning("ENCRYPTION_KEY not configured - storing values as-is")
        return None

    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_value(plaintext: str) -> str:
    """
    Encrypt a string value. Returns the encrypted token as a string.
    Stores plaintext if no encryption key is configured.
    """
    if not plaintext:
        return plaintext

    fernet = _get_fernet()
    if fernet is None:
        return plaintext

    return fernet.encrypt(plaintext.encode()).decode()


def decrypt_value(encrypted: str) -> Optional[str]:
    """
    Decrypt a string value. Values that are not Fernet tokens (stored
    before a key was configured) come back as-is.
    """
    if not encrypted:
        return encrypted

    fernet = _get_fernet()
    if fernet is None:
        return encrypted

    from cryptography.fernet import InvalidToken
    try:
        return fernet.decrypt(encrypted.encode()).decode()
    except InvalidToken:
        return encrypted


def mask_value(value: str) -> str:
    """Mask a secret for display: keep the first 3 and last 4 characters."""
    if not value:
        return ""
    if len(value) <= 10:
        return "*" * len(value)
    return f"{value[:3]}...{value[-4:]}"
