"""Subscriber directory and the subscribe/confirm flow."""

import secrets
import string
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newsletter.domain import SubscriberEmail, SubscriberName
from newsletter.errors import ConflictError, UnauthorizedError
from newsletter.models.subscription import (
    CONFIRMED,
    PENDING_CONFIRMATION,
    Subscription,
    SubscriptionToken,
)
from newsletter.services.email_client import EmailClient

logger = structlog.get_logger(__name__)

SUBSCRIPTION_TOKEN_LENGTH = 25
_TOKEN_ALPHABET = string.ascii_letters + string.digits


def generate_subscription_token() -> str:
    """Random alphanumeric confirmation token."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(SUBSCRIPTION_TOKEN_LENGTH))


class SubscriberDirectory:
    """Read access to confirmed subscribers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_confirmed_subscribers(self) -> list[str]:
        """
        Emails of every confirmed subscriber, as stored.

        Addresses are not re-validated here; the delivery worker skips
        those that no longer parse.
        """
        result = await self.db.execute(
            select(Subscription.email)
            .where(Subscription.status == CONFIRMED)
            .order_by(Subscription.subscribed_at)
        )
        return list(result.scalars().all())


class SubscriptionService:
    """Creates pending subscriptions and confirms them."""

    def __init__(self, db: AsyncSession, email_client: EmailClient, base_url: str):
        self.db = db
        self.email_client = email_client
        self.base_url = base_url.rstrip("/")

    async def subscribe(self, email: SubscriberEmail, name: SubscriberName) -> UUID:
        """
        Store a pending subscription with its token, then send the
        confirmation email.

        Raises:
            ConflictError - the address is already subscribed
            DeliveryError - the confirmation email could not be sent
        """
        subscription = Subscription(email=email, name=name, status=PENDING_CONFIRMATION)
        token = generate_subscription_token()
        subscription.tokens.append(SubscriptionToken(subscription_token=token))

        self.db.add(subscription)
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            raise ConflictError(
                f"{email} is already subscribed", code="ALREADY_SUBSCRIBED"
            ) from exc
        await self.db.commit()

        logger.info("subscriber_added", subscription_id=str(subscription.id))
        await self.send_confirmation_email(email, token)
        return subscription.id

    async def send_confirmation_email(self, email: SubscriberEmail, token: str) -> None:
        confirmation_link = (
            f"{self.base_url}/api/v1/subscriptions/confirm?subscription_token={token}"
        )
        html_body = (
            "Welcome to our newsletter!<br/>"
            f'Click <a href="{confirmation_link}">here</a> to confirm your subscription.'
        )
        text_body = (
            "Welcome to our newsletter!\n"
            f"Visit {confirmation_link} to confirm your subscription."
        )
        await self.email_client.send_email(email, "Welcome!", html_body, text_body)


async def confirm_subscription(db: AsyncSession, subscription_token: str) -> UUID:
    """
    Mark the subscription owning this token as confirmed.

    Confirming twice is harmless.

    Raises:
        UnauthorizedError - no subscription is associated with the token
    """
    result = await db.execute(
        select(SubscriptionToken.subscription_id).where(
            SubscriptionToken.subscription_token == subscription_token
        )
    )
    subscription_id = result.scalar_one_or_none()
    if subscription_id is None:
        raise UnauthorizedError("There is no subscriber associated with the provided token.")

    await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription_id)
        .values(status=CONFIRMED)
    )
    await db.commit()

    logger.info("subscriber_confirmed", subscription_id=str(subscription_id))
    return subscription_id
