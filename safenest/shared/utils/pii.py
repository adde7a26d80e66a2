"""Identifier hashing for logs and partition keys.

Child, family and member identifiers never appear in application logs or
event-stream partition keys in the clear. Browsing URLs are never hashed
or logged at all; crisis-resource visits must leave no artifact.
"""
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# Loaded from AWS Secrets Manager (or PII_HASH_SALT) at service startup
_PII_SALT: Optional[str] = None

MIN_SALT_LENGTH = 32


def configure_pii_salt(salt: str) -> None:
    """Configure the identifier hashing salt.

    Must be called during application startup before any hashing.

    Args:
        salt: Secret salt value, at least 32 characters

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < MIN_SALT_LENGTH:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": MIN_SALT_LENGTH}
        )
        raise ValueError(f"PII salt must be at least {MIN_SALT_LENGTH} characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def hash_pii(value: str) -> str:
    """Hash an identifier for safe logging and partitioning.

    Uses HMAC-SHA-256 keyed with the configured salt, so the same child
    always maps to the same hash without the id being recoverable.

    Args:
        value: Identifier to hash (child id, family id, member id)

    Returns:
        64-char hex digest

    Raises:
        RuntimeError: If the salt has not been configured
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    return hmac.new(
        _PII_SALT.encode(), str(value).encode(), hashlib.sha256
    ).hexdigest()
