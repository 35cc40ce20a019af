"""Administrator accounts, their roles and API keys."""

from datetime import datetime, timezone

from sqlalchemy import (
    ARRAY,
    TIMESTAMP,
    CheckConstraint,
    Column,
    ForeignKey,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from newsletter.database import Base

PUBLISH_SCOPE = "newsletters:publish"


class User(Base):
    """
    Account that publishes newsletters.

    The id is the identity idempotency keys are scoped to.
    """

    __tablename__ = "users"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    username = Column(String, unique=True, nullable=False)
    email = Column(String, unique=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        CheckConstraint("username ~ '^[a-z0-9_]{3,32}$'", name="ck_username_format"),
    )

    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")
    api_keys = relationship("APIKey", back_populates="user", cascade="all, delete-orphan")

    def has_role(self, role: str) -> bool:
        return any(assigned.role == role for assigned in self.roles)


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role = Column(String, primary_key=True)
    granted_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))

    user = relationship("User", back_populates="roles")


class APIKey(Base):
    """Hashed API key; the plaintext is shown once at creation."""

    __tablename__ = "api_keys"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    user_id = Column(PG_UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"))
    key_hash = Column(Text, nullable=False, unique=True)
    key_prefix = Column(String(12), nullable=False)
    label = Column(Text)
    scopes = Column(ARRAY(String), server_default=text(f"ARRAY['{PUBLISH_SCOPE}']"))
    created_at = Column(TIMESTAMP(timezone=True), server_default=text("NOW()"))
    expires_at = Column(TIMESTAMP(timezone=True))
    revoked_at = Column(TIMESTAMP(timezone=True))

    user = relationship("User", back_populates="api_keys")

    def has_scope(self, scope: str) -> bool:
        return scope in (self.scopes or [])

    def is_usable(self, now: datetime | None = None) -> bool:
        """Not revoked and not past its expiry."""
        if self.revoked_at is not None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at is None or self.expires_at > now
