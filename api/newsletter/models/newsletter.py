"""Newsletter issue and delivery queue models."""

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from newsletter.database import Base


class NewsletterIssue(Base):
    """Published issue content. Never modified after insert."""

    __tablename__ = "newsletter_issues"

    newsletter_issue_id = Column(
        PG_UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()")
    )
    title = Column(Text, nullable=False)
    html_content = Column(Text, nullable=False)
    text_content = Column(Text, nullable=False)
    published_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")
    )


class IssueDeliveryTask(Base):
    """
    One pending send of an issue to one subscriber.

    Row presence is the pending state; workers delete the row once the send
    attempt is finished.
    """

    __tablename__ = "issue_delivery_queue"

    newsletter_issue_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("newsletter_issues.newsletter_issue_id", ondelete="CASCADE"),
        primary_key=True,
    )
    subscriber_email = Column(Text, primary_key=True)
