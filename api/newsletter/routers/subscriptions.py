"""Subscription router: sign up and confirm."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.config import settings
from newsletter.database import get_db
from newsletter.domain import SubscriberEmail, SubscriberName
from newsletter.middleware.rate_limit import limiter
from newsletter.models.subscription import CONFIRMED, PENDING_CONFIRMATION
from newsletter.schemas.subscriptions import (
    ConfirmResponse,
    SubscribeRequest,
    SubscribeResponse,
)
from newsletter.services.email_client import EmailClient, get_email_client
from newsletter.services.subscriptions import SubscriptionService, confirm_subscription

router = APIRouter(prefix="/api/v1/subscriptions", tags=["Subscriptions"])


@router.post(
    "",
    response_model=SubscribeResponse,
    status_code=status.HTTP_200_OK,
)
@limiter.limit(settings.subscribe_rate_limit)
async def subscribe(
    request: Request,
    data: SubscribeRequest,
    db: AsyncSession = Depends(get_db),
    email_client: EmailClient = Depends(get_email_client),
) -> SubscribeResponse:
    """
    Register a pending subscriber and email them a confirmation link.

    Invalid email or name returns 400; an address already subscribed returns 409.
    """
    email = SubscriberEmail.parse(data.email)
    name = SubscriberName.parse(data.name)

    service = SubscriptionService(db, email_client, settings.base_url)
    subscription_id = await service.subscribe(email, name)

    return SubscribeResponse(subscription_id=str(subscription_id), status=PENDING_CONFIRMATION)


@router.get(
    "/confirm",
    response_model=ConfirmResponse,
    status_code=status.HTTP_200_OK,
)
async def confirm(
    subscription_token: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> ConfirmResponse:
    """Confirm the subscription that owns the emailed token."""
    subscription_id = await confirm_subscription(db, subscription_token)
    return ConfirmResponse(subscription_id=str(subscription_id), status=CONFIRMED)
