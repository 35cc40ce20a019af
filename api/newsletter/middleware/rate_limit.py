"""Rate limiting for unauthenticated endpoints using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Keyed by client IP; only the public subscription endpoint is limited
limiter = Limiter(key_func=get_remote_address)


def reset_limiter() -> None:
    """Clear stored hit counts. Used by tests for isolation."""
    limiter.reset()
