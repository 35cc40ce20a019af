"""API key generation and hashing utilities.

Keys are high-entropy random tokens, so a keyed HMAC-SHA256 is enough to
store them; no slow password hash is involved.
"""

import hashlib
import hmac
import secrets

from newsletter.config import settings

API_KEY_PREFIX = "nl_live_"


def generate_api_key() -> tuple[str, str]:
    """
    Generate API key and its hash.

    Returns:
        Tuple of (plaintext_key, key_hash).
        The plaintext key should only be shown once to the user.
    """
    plaintext_key = f"{API_KEY_PREFIX}{secrets.token_hex(32)}"
    return plaintext_key, hash_api_key(plaintext_key)


def hash_api_key(key: str) -> str:
    """Hash API key using HMAC-SHA256 with server secret."""
    return hmac.new(
        settings.api_key_secret.encode(),
        key.encode(),
        hashlib.sha256,
    ).hexdigest()


def get_key_prefix(key: str) -> str:
    """Get first 12 chars of key for identification in listings."""
    return key[:12]
