"""Publish coordinator: store an issue and enqueue its deliveries exactly once."""

from uuid import UUID

import structlog
from fastapi import status
from fastapi.responses import JSONResponse
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from newsletter.domain import IdempotencyKey
from newsletter.models.newsletter import IssueDeliveryTask, NewsletterIssue
from newsletter.services.idempotency import AlreadyCompleted, IdempotencyService
from newsletter.services.subscriptions import SubscriberDirectory

logger = structlog.get_logger(__name__)

NEWSLETTER_ACCEPTED = "The newsletter issue has been accepted and will be delivered shortly."


class PublishService:
    """
    Publishes newsletter issues behind an idempotency key.

    The issue row, its delivery tasks and the saved response are written in
    one transaction. Emails are sent later by the delivery worker.
    """

    def __init__(
        self,
        db: AsyncSession,
        directory: SubscriberDirectory | None = None,
        idempotency: IdempotencyService | None = None,
    ):
        self.db = db
        self.directory = directory or SubscriberDirectory(db)
        self.idempotency = idempotency or IdempotencyService(db)

    async def publish(
        self,
        user_id: UUID,
        title: str,
        html_content: str,
        text_content: str,
        idempotency_key: IdempotencyKey,
    ) -> Response:
        log = logger.bind(user_id=str(user_id), idempotency_key=str(idempotency_key))

        outcome = await self.idempotency.try_begin(user_id, idempotency_key)
        if isinstance(outcome, AlreadyCompleted):
            log.info("newsletter_publish_replayed")
            return outcome.saved_response.to_response()

        issue_id = await self.insert_newsletter_issue(title, html_content, text_content)
        recipient_count = await self.enqueue_delivery_tasks(issue_id)

        response = JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content={
                "issue_id": str(issue_id),
                "recipient_count": recipient_count,
                "message": NEWSLETTER_ACCEPTED,
            },
            headers={"Location": f"/api/v1/admin/newsletters/{issue_id}"},
        )
        response = await self.idempotency.complete(outcome, response)

        log.info(
            "newsletter_published",
            newsletter_issue_id=str(issue_id),
            recipient_count=recipient_count,
        )
        return response

    async def insert_newsletter_issue(
        self, title: str, html_content: str, text_content: str
    ) -> UUID:
        result = await self.db.execute(
            insert(NewsletterIssue)
            .values(title=title, html_content=html_content, text_content=text_content)
            .returning(NewsletterIssue.newsletter_issue_id)
        )
        return result.scalar_one()

    async def enqueue_delivery_tasks(self, issue_id: UUID) -> int:
        """Snapshot the confirmed subscribers into the delivery queue."""
        recipients = await self.directory.list_confirmed_subscribers()
        if recipients:
            await self.db.execute(
                insert(IssueDeliveryTask),
                [
                    {"newsletter_issue_id": issue_id, "subscriber_email": email}
                    for email in recipients
                ],
            )
        return len(recipients)
