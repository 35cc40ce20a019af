"""Newsletter publishing schemas."""

from pydantic import BaseModel


class PublishIssueRequest(BaseModel):
    """Publish request; the key is validated separately so bad keys map to 400."""

    title: str
    html_content: str
    text_content: str
    idempotency_key: str


class PublishIssueResponse(BaseModel):
    """Body of the 202 response returned (and replayed) for a publish."""

    issue_id: str
    recipient_count: int
    message: str


class IssueResponse(BaseModel):
    """A published issue with its outstanding deliveries."""

    issue_id: str
    title: str
    html_content: str
    text_content: str
    published_at: str
    pending_deliveries: int
