"""Admin router for publishing newsletter issues."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from newsletter.auth.dependencies import current_identity, require_admin
from newsletter.database import get_db
from newsletter.domain import IdempotencyKey
from newsletter.models.newsletter import IssueDeliveryTask, NewsletterIssue
from newsletter.models.user import User
from newsletter.schemas.newsletter import (
    IssueResponse,
    PublishIssueRequest,
    PublishIssueResponse,
)
from newsletter.services.publishing import PublishService

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.post(
    "/newsletters",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=PublishIssueResponse,
    responses={400: {"description": "Malformed idempotency key"}},
)
async def publish_newsletter(
    data: PublishIssueRequest,
    db: AsyncSession = Depends(get_db),
    user_id: UUID = Depends(current_identity),
) -> Response:
    """
    Publish a newsletter issue to every confirmed subscriber.

    Deliveries are queued and sent asynchronously. Retrying with the same
    idempotency_key returns the original response without publishing again.
    """
    idempotency_key = IdempotencyKey.parse(data.idempotency_key)

    service = PublishService(db)
    return await service.publish(
        user_id=user_id,
        title=data.title,
        html_content=data.html_content,
        text_content=data.text_content,
        idempotency_key=idempotency_key,
    )


@router.get(
    "/newsletters/{issue_id}",
    response_model=IssueResponse,
    status_code=status.HTTP_200_OK,
)
async def get_newsletter_issue(
    issue_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(require_admin),
) -> IssueResponse:
    """Get a published issue and how many deliveries are still queued."""
    result = await db.execute(
        select(NewsletterIssue).where(NewsletterIssue.newsletter_issue_id == issue_id)
    )
    issue = result.scalar_one_or_none()

    if not issue:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": {
                    "code": "NOT_FOUND",
                    "message": f"Newsletter issue '{issue_id}' not found",
                }
            },
        )

    pending = await db.execute(
        select(func.count())
        .select_from(IssueDeliveryTask)
        .where(IssueDeliveryTask.newsletter_issue_id == issue_id)
    )

    return IssueResponse(
        issue_id=str(issue.newsletter_issue_id),
        title=issue.title,
        html_content=issue.html_content,
        text_content=issue.text_content,
        published_at=issue.published_at.isoformat(),
        pending_deliveries=pending.scalar_one(),
    )
