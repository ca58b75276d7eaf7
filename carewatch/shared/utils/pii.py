"""PII/PHI handling utilities: nothing a caller says reaches the logs.

Call identifiers are hashed with a secret salt before logging, and
conversation text is only ever logged as an unsalted content fingerprint
so that an entry can be matched against the stored transcript if a
caregiver review needs it.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# Loaded from the deployment secret store; tests configure their own
_PII_SALT: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Configure the salt used for hashing call identifiers.

    Must be called during application startup before any PII hashing.

    Args:
        salt: Secret salt value

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < 32:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": 32}
        )
        raise ValueError("PII salt must be at least 32 characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def hash_pii(value: str) -> str:
    """Hash an identifier (call SID, phone number) for safe logging.

    Args:
        value: The identifier to hash

    Returns:
        64-char hex SHA-256 digest of the salted value

    Raises:
        RuntimeError: If the salt has not been configured
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_text_for_audit(text: Optional[str]) -> str:
    """Fingerprint utterance text for log lines without exposing content.

    Args:
        text: Raw utterance or response text (None is treated as empty)

    Returns:
        First 16 hex chars of the SHA-256 of the text
    """
    return hashlib.sha256((text or "").encode()).hexdigest()[:16]
