"""Subscription request/response schemas."""

from pydantic import BaseModel


class SubscribeRequest(BaseModel):
    """New subscriber details; contents are validated by the domain types."""

    email: str
    name: str


class SubscribeResponse(BaseModel):
    subscription_id: str
    status: str


class ConfirmResponse(BaseModel):
    subscription_id: str
    status: str
