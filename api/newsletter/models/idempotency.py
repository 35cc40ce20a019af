"""Idempotency record model for safe publish retries."""

from sqlalchemy import (
    TIMESTAMP,
    Column,
    ForeignKey,
    Index,
    LargeBinary,
    SmallInteger,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID

from newsletter.database import Base


class IdempotencyRecord(Base):
    """
    Outcome of a request identified by (user_id, idempotency_key).

    A row is either claimed (all response columns NULL) or completed (all
    response columns set). Stores the exact response for replay on retries.
    """

    __tablename__ = "idempotency"

    user_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    idempotency_key = Column(String(50), primary_key=True)
    response_status_code = Column(SmallInteger)
    # Ordered list of {"name": ..., "value": ...}; duplicates allowed
    response_headers = Column(JSONB)
    response_body = Column(LargeBinary)
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")
    )

    __table_args__ = (
        Index("idx_idempotency_created", "created_at"),
    )

    @property
    def is_completed(self) -> bool:
        return self.response_status_code is not None
