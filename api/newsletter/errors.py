"""Error types shared by services, routers and the delivery worker."""

from fastapi import status


class NewsletterError(Exception):
    """Base error carrying the API error code and HTTP status."""

    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(NewsletterError):
    """Client-supplied value rejected before reaching storage."""

    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code


class UnauthorizedError(NewsletterError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED


class ConflictError(NewsletterError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code:
            self.code = code


class ProtocolViolation(NewsletterError):
    """
    Persisted state that the idempotency protocol never produces.

    Indicates a bug rather than a transient condition.
    """

    code = "IDEMPOTENCY_STATE_ERROR"


class DeliveryError(NewsletterError):
    """The email API rejected a message or could not be reached."""

    code = "DELIVERY_FAILED"

    def __init__(self, message: str, recipient: str | None = None):
        super().__init__(message)
        self.recipient = recipient
