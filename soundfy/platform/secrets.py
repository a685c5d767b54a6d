"""
Secrets encryption and log redaction.

CRITICAL SECURITY REQUIREMENTS:
- Shopify access tokens are NEVER stored in plaintext
- All encrypt/decrypt operations MUST use this module
- Any key name containing token/secret/key MUST be redacted from logs

Usage:
    from soundfy.platform.secrets import encrypt_secret, decrypt_secret, redact_secrets

    shop.shopify_token = encrypt_secret(access_token)
    access_token = decrypt_secret(shop.shopify_token)
    logger.info("Webhook received", extra=redact_secrets(headers))
"""

import base64
import hashlib
import logging
import os
import re
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Mapping keys whose values are always replaced
SECRET_KEY_PATTERN = re.compile(
    r"(api[_-]?(key|secret)|secret[_-]?key|client[_-]?secret|access[_-]?token|"
    r"shopify[_-]?token|password|hmac|encryption[_-]?key|database[_-]?url)",
    re.IGNORECASE,
)

# Token shapes replaced inside free text
SECRET_VALUE_PATTERNS = (
    re.compile(r"Bearer\s+[a-zA-Z0-9._-]+"),
    re.compile(r"shp(at|ca|pa)_[a-fA-F0-9]{32,}"),
    re.compile(r"shpss_[a-zA-Z0-9]{24,}"),
)

REDACTED_VALUE = "[REDACTED]"

# Key derivation parameters for ENCRYPTION_KEY
_KDF_SALT = b"soundfy-secrets-salt"
_KDF_ITERATIONS = 100000


class EncryptionError(Exception):
    """Raised when encryption/decryption operations fail."""
    pass


class SecretsManager:
    """
    Fernet encryption keyed from the ENCRYPTION_KEY environment variable.

    The key is derived lazily on first use so that importing this module
    never requires the variable to be set.
    """

    def __init__(self, encryption_key: Optional[str] = None):
        self._encryption_key = encryption_key
        self._fernet: Optional[Fernet] = None

    def _get_fernet(self) -> Fernet:
        if self._fernet is not None:
            return self._fernet

        encryption_key = self._encryption_key or os.getenv("ENCRYPTION_KEY")
        if not encryption_key:
            raise EncryptionError("ENCRYPTION_KEY is not configured")

        derived_key = hashlib.pbkdf2_hmac(
            "sha256",
            encryption_key.encode(),
            _KDF_SALT,
            _KDF_ITERATIONS,
            dklen=32,  # Fernet requires 32 bytes
        )
        self._fernet = Fernet(base64.urlsafe_b64encode(derived_key))
        return self._fernet

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string.

        Raises:
            ValueError: If plaintext is empty
            EncryptionError: If no key is configured
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")

        encrypted = self._get_fernet().encrypt(plaintext.encode("utf-8"))
        return encrypted.decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt an encrypted string.

        Raises:
            ValueError: If ciphertext is empty
            EncryptionError: If the key is missing or does not match
        """
        if not ciphertext:
            raise ValueError("Cannot decrypt empty string")

        try:
            decrypted = self._get_fernet().decrypt(ciphertext.encode("utf-8"))
        except InvalidToken:
            raise EncryptionError("Invalid ciphertext or wrong encryption key")
        return decrypted.decode("utf-8")

    def reset(self) -> None:
        """Forget the derived key (tests rotate ENCRYPTION_KEY)."""
        self._fernet = None


# Singleton instance
_secrets_manager = SecretsManager()


def encrypt_secret(plaintext: str) -> str:
    """Encrypt a secret for storage."""
    return _secrets_manager.encrypt(plaintext)


def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a stored secret."""
    return _secrets_manager.decrypt(ciphertext)


def reset_secrets_manager() -> None:
    _secrets_manager.reset()


def is_secret_key(key: str) -> bool:
    return bool(SECRET_KEY_PATTERN.search(key))


def redact_value(value: Any) -> Any:
    """Replace token-shaped substrings of a string."""
    if not isinstance(value, str):
        return value
    for pattern in SECRET_VALUE_PATTERNS:
        value = pattern.sub(REDACTED_VALUE, value)
    return value


def redact_secrets(data: Any, _depth: int = 0) -> Any:
    """
    Copy of `data` with secrets redacted, for logging.

    Values under secret-looking keys are replaced wholesale; other strings
    have token-shaped substrings replaced. Nesting deeper than ten levels is
    returned as is.
    """
    if _depth > 10:
        return data
    if isinstance(data, dict):
        return {
            key: REDACTED_VALUE
            if isinstance(key, str) and is_secret_key(key)
            else redact_secrets(value, _depth + 1)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(redact_secrets(item, _depth + 1) for item in data)
    return redact_value(data)


# LogRecord attributes that are never caller-supplied extras
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None)))


class SecretRedactingFilter(logging.Filter):
    """
    Redacts the message, its arguments and any `extra=` fields.

    Usage:
        handler.addFilter(SecretRedactingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_value(record.msg)
        if record.args:
            record.args = redact_secrets(record.args)

        for name, value in list(vars(record).items()):
            if name in _RECORD_ATTRIBUTES:
                continue
            if is_secret_key(name):
                setattr(record, name, REDACTED_VALUE)
            else:
                setattr(record, name, redact_secrets(value))
        return True
