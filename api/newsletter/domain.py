"""Validated value types for subscriber contact details and idempotency keys."""

import re

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from newsletter.errors import ValidationError

IDEMPOTENCY_KEY_MAX_LENGTH = 50
SUBSCRIBER_NAME_MAX_LENGTH = 256
FORBIDDEN_NAME_CHARACTERS = frozenset('/()"<>\\{}')

_IDEMPOTENCY_KEY_RE = re.compile(r"[A-Za-z0-9_-]+")
_email_adapter = TypeAdapter(EmailStr)


class SubscriberEmail(str):
    """An email address that passed syntax validation."""

    __slots__ = ()

    @classmethod
    def parse(cls, value: str) -> "SubscriberEmail":
        try:
            validated = _email_adapter.validate_python(value)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"{value!r} is not a valid subscriber email.",
                code="INVALID_EMAIL",
            ) from exc
        return cls(validated)


class SubscriberName(str):
    """A display name safe to store and render."""

    __slots__ = ()

    @classmethod
    def parse(cls, value: str) -> "SubscriberName":
        stripped = value.strip()
        if not stripped:
            raise ValidationError("Subscriber name must not be empty.", code="INVALID_NAME")
        if len(stripped) > SUBSCRIBER_NAME_MAX_LENGTH:
            raise ValidationError(
                f"Subscriber name must be at most {SUBSCRIBER_NAME_MAX_LENGTH} characters.",
                code="INVALID_NAME",
            )
        if any(ch in FORBIDDEN_NAME_CHARACTERS for ch in stripped):
            raise ValidationError(
                f"{value!r} contains forbidden characters.", code="INVALID_NAME"
            )
        return cls(stripped)


class IdempotencyKey(str):
    """Client-supplied token identifying one logical request across retries."""

    __slots__ = ()

    @classmethod
    def parse(cls, value: str) -> "IdempotencyKey":
        if not value:
            raise ValidationError(
                "The idempotency key cannot be empty.", code="INVALID_IDEMPOTENCY_KEY"
            )
        if len(value) > IDEMPOTENCY_KEY_MAX_LENGTH:
            raise ValidationError(
                f"The idempotency key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters.",
                code="INVALID_IDEMPOTENCY_KEY",
            )
        if not _IDEMPOTENCY_KEY_RE.fullmatch(value):
            raise ValidationError(
                "The idempotency key may only contain ASCII letters, digits, '-' and '_'.",
                code="INVALID_IDEMPOTENCY_KEY",
            )
        return cls(value)
