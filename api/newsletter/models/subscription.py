"""Subscription and confirmation token models."""

from sqlalchemy import TIMESTAMP, CheckConstraint, Column, ForeignKey, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship

from newsletter.database import Base

PENDING_CONFIRMATION = "pending_confirmation"
CONFIRMED = "confirmed"


class Subscription(Base):
    """A newsletter subscriber."""

    __tablename__ = "subscriptions"

    id = Column(PG_UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    email = Column(Text, unique=True, nullable=False)
    name = Column(Text, nullable=False)
    status = Column(String(32), nullable=False, server_default=text(f"'{PENDING_CONFIRMATION}'"))
    subscribed_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")
    )

    __table_args__ = (
        CheckConstraint(
            f"status IN ('{PENDING_CONFIRMATION}', '{CONFIRMED}')",
            name="ck_subscription_status",
        ),
    )

    tokens = relationship(
        "SubscriptionToken", back_populates="subscription", cascade="all, delete-orphan"
    )


class SubscriptionToken(Base):
    """Confirmation token emailed to a pending subscriber."""

    __tablename__ = "subscription_tokens"

    subscription_token = Column(Text, primary_key=True)
    subscription_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    )

    subscription = relationship("Subscription", back_populates="tokens")
