"""Services for the newsletter API."""

from newsletter.services.delivery import DeliveryWorker, ExecutionOutcome
from newsletter.services.email_client import EmailClient, get_email_client
from newsletter.services.idempotency import IdempotencyService
from newsletter.services.publishing import PublishService
from newsletter.services.subscriptions import SubscriberDirectory, SubscriptionService

__all__ = [
    "DeliveryWorker",
    "ExecutionOutcome",
    "EmailClient",
    "get_email_client",
    "IdempotencyService",
    "PublishService",
    "SubscriberDirectory",
    "SubscriptionService",
]
