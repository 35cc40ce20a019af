"""Pydantic schemas for request/response validation."""

from newsletter.schemas.newsletter import (
    IssueResponse,
    PublishIssueRequest,
    PublishIssueResponse,
)
from newsletter.schemas.subscriptions import (
    ConfirmResponse,
    SubscribeRequest,
    SubscribeResponse,
)

__all__ = [
    "PublishIssueRequest",
    "PublishIssueResponse",
    "IssueResponse",
    "SubscribeRequest",
    "SubscribeResponse",
    "ConfirmResponse",
]
