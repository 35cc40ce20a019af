"""Authentication dependencies for the admin endpoints."""

import hmac
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from newsletter.auth.api_key import API_KEY_PREFIX, hash_api_key
from newsletter.database import get_db
from newsletter.models.user import PUBLISH_SCOPE, APIKey, User

ADMIN_ROLE = "admin"


def _auth_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": {"code": code, "message": message}},
    )


async def get_api_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    db: AsyncSession = Depends(get_db),
) -> APIKey:
    """
    Resolve the X-API-Key header to a usable key with its owner loaded.

    Raises:
        HTTPException: 401 if the key is missing, malformed, unknown,
            revoked or expired
    """
    if not x_api_key or not x_api_key.startswith(API_KEY_PREFIX):
        raise _auth_error(status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "API key required")

    key_hash = hash_api_key(x_api_key)
    result = await db.execute(
        select(APIKey)
        .options(selectinload(APIKey.user).selectinload(User.roles))
        .where(APIKey.key_hash == key_hash)
    )
    api_key = result.scalar_one_or_none()

    if api_key is None:
        # Constant-time compare so lookups of unknown keys cost the same
        hmac.compare_digest(key_hash, "0" * 64)
    if api_key is None or not api_key.is_usable():
        raise _auth_error(
            status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Invalid, revoked or expired API key"
        )

    return api_key


async def get_current_user(api_key: APIKey = Depends(get_api_key)) -> User:
    return api_key.user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """
    Require the admin role.

    Raises:
        HTTPException: 403 for authenticated users without it
    """
    if not user.has_role(ADMIN_ROLE):
        raise _auth_error(status.HTTP_403_FORBIDDEN, "FORBIDDEN", "Admin access required")
    return user


async def current_identity(
    user: User = Depends(require_admin),
    api_key: APIKey = Depends(get_api_key),
) -> UUID:
    """
    Identity idempotency keys are scoped to.

    Raises:
        HTTPException: 403 if the key lacks the publish scope
    """
    if not api_key.has_scope(PUBLISH_SCOPE):
        raise _auth_error(
            status.HTTP_403_FORBIDDEN,
            "INSUFFICIENT_SCOPE",
            f"API key lacks the '{PUBLISH_SCOPE}' scope",
        )
    return user.id
