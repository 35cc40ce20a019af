"""Idempotency service for safe publish retries.

A request claims its key by inserting a bare row inside the request's
transaction. The row is completed with the serialized response in that same
transaction, so the side effects and the saved response commit together.
Concurrent duplicates block on the primary key until the first transaction
finishes and then replay the saved response.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from newsletter.config import settings
from newsletter.domain import IdempotencyKey
from newsletter.errors import ProtocolViolation
from newsletter.models.idempotency import IdempotencyRecord

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SavedResponse:
    """Status, ordered header pairs and body of a completed request."""

    status_code: int
    headers: list[tuple[str, str]]
    body: bytes

    @classmethod
    def from_response(cls, response: Response) -> "SavedResponse":
        headers = [
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in response.raw_headers
        ]
        return cls(status_code=response.status_code, headers=headers, body=bytes(response.body))

    def to_response(self) -> Response:
        response = Response(content=self.body, status_code=self.status_code)
        response.raw_headers = [
            (name.encode("latin-1"), value.encode("latin-1")) for name, value in self.headers
        ]
        return response


@dataclass(frozen=True)
class Claimed:
    """The caller owns the key and must finish with IdempotencyService.complete."""

    user_id: UUID
    key: IdempotencyKey


@dataclass(frozen=True)
class AlreadyCompleted:
    """A previous request with this key finished; replay its response."""

    saved_response: SavedResponse


class IdempotencyService:
    """Service for claiming idempotency keys and saving responses."""

    def __init__(self, db: AsyncSession, stale_claim_after: timedelta | None = None):
        self.db = db
        self.stale_claim_after = (
            settings.idempotency_stale_claim_after
            if stale_claim_after is None
            else stale_claim_after
        )

    def _match(self, user_id: UUID, key: IdempotencyKey):
        return (
            IdempotencyRecord.user_id == user_id,
            IdempotencyRecord.idempotency_key == key,
        )

    async def try_begin(
        self, user_id: UUID, key: IdempotencyKey
    ) -> Claimed | AlreadyCompleted:
        """
        Claim the key or return the saved response.

        Returns:
            Claimed - a new claim row was written in the open transaction
            AlreadyCompleted - a completed row exists for this key

        Raises:
            ProtocolViolation - a recent claim exists that was never completed
        """
        now = datetime.now(timezone.utc)

        inserted = await self.db.execute(
            pg_insert(IdempotencyRecord)
            .values(user_id=user_id, idempotency_key=key, created_at=now)
            .on_conflict_do_nothing(index_elements=["user_id", "idempotency_key"])
            .returning(IdempotencyRecord.idempotency_key)
        )
        if inserted.first() is not None:
            return Claimed(user_id=user_id, key=key)

        # A committed claim with no response is left behind only when the
        # claim and completion did not share a transaction. Old ones are
        # treated as abandoned and retried.
        cutoff = now - self.stale_claim_after
        reclaimed = await self.db.execute(
            update(IdempotencyRecord)
            .where(*self._match(user_id, key))
            .where(IdempotencyRecord.response_status_code.is_(None))
            .where(IdempotencyRecord.created_at < cutoff)
            .values(created_at=now)
            .returning(IdempotencyRecord.idempotency_key)
            .execution_options(synchronize_session=False)
        )
        if reclaimed.first() is not None:
            logger.warning(
                "stale_idempotency_claim_reclaimed",
                user_id=str(user_id),
                idempotency_key=str(key),
            )
            return Claimed(user_id=user_id, key=key)

        saved_response = await self.get_saved_response(user_id, key)
        if saved_response is None:
            logger.error(
                "idempotency_claim_without_response",
                user_id=str(user_id),
                idempotency_key=str(key),
            )
            raise ProtocolViolation(
                "We expected a saved response for this idempotency key, we didn't find it"
            )
        return AlreadyCompleted(saved_response=saved_response)

    async def get_saved_response(
        self, user_id: UUID, key: IdempotencyKey
    ) -> SavedResponse | None:
        """Fetch the completed response for a key, or None if there is none."""
        result = await self.db.execute(
            select(
                IdempotencyRecord.response_status_code,
                IdempotencyRecord.response_headers,
                IdempotencyRecord.response_body,
            ).where(*self._match(user_id, key))
        )
        row = result.one_or_none()
        if row is None or row.response_status_code is None:
            return None

        return SavedResponse(
            status_code=row.response_status_code,
            headers=[(h["name"], h["value"]) for h in row.response_headers or []],
            body=row.response_body or b"",
        )

    async def complete(self, claim: Claimed, response: Response) -> Response:
        """Save the response on the claimed row and commit the transaction."""
        saved = SavedResponse.from_response(response)

        updated = await self.db.execute(
            update(IdempotencyRecord)
            .where(*self._match(claim.user_id, claim.key))
            .where(IdempotencyRecord.response_status_code.is_(None))
            .values(
                response_status_code=saved.status_code,
                response_headers=[
                    {"name": name, "value": value} for name, value in saved.headers
                ],
                response_body=saved.body,
            )
            .returning(IdempotencyRecord.idempotency_key)
            .execution_options(synchronize_session=False)
        )
        if updated.first() is None:
            raise ProtocolViolation("The idempotency claim disappeared before completion")

        await self.db.commit()
        return saved.to_response()
