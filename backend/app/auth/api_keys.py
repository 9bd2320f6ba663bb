"""API key generation.

Keys are 32 random bytes rendered as URL-safe base64, truncated to 43
characters and prefixed with ``proj_`` (48 characters in total). Longer keys
issued elsewhere are accepted by the shape check.
"""

import base64
import secrets

API_KEY_PREFIX = "proj_"
_KEY_BODY_LENGTH = 43


def generate_api_key() -> str:
    """Generate a new project API key from a cryptographically strong source."""
    raw = secrets.token_bytes(32)
    body = base64.urlsafe_b64encode(raw).decode("ascii")[:_KEY_BODY_LENGTH]
    return f"{API_KEY_PREFIX}{body}"


def looks_like_api_key(value: str) -> bool:
    """Cheap shape check run before the database lookup."""
    return value.startswith(API_KEY_PREFIX) and len(value) >= len(API_KEY_PREFIX) + _KEY_BODY_LENGTH
