"""Database models for the newsletter service."""

from newsletter.models.idempotency import IdempotencyRecord
from newsletter.models.newsletter import IssueDeliveryTask, NewsletterIssue
from newsletter.models.subscription import Subscription, SubscriptionToken
from newsletter.models.user import APIKey, User, UserRole

__all__ = [
    "User",
    "UserRole",
    "APIKey",
    "Subscription",
    "SubscriptionToken",
    "NewsletterIssue",
    "IssueDeliveryTask",
    "IdempotencyRecord",
]
