"""Issue delivery worker.

Each cycle claims one queue row with SELECT ... FOR UPDATE SKIP LOCKED,
sends the issue to that subscriber and deletes the row in the same
transaction. A worker that dies mid-cycle releases its row lock when the
connection drops, so another worker picks the row up again.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.config import settings
from newsletter.domain import SubscriberEmail
from newsletter.errors import DeliveryError, ValidationError
from newsletter.models.newsletter import IssueDeliveryTask, NewsletterIssue
from newsletter.services.email_client import EmailClient

logger = structlog.get_logger(__name__)


class ExecutionOutcome(str, Enum):
    TASK_COMPLETED = "task_completed"
    EMPTY_QUEUE = "empty_queue"


@dataclass(frozen=True)
class DeliveryTask:
    newsletter_issue_id: UUID
    subscriber_email: str


async def dequeue_task(session: AsyncSession) -> DeliveryTask | None:
    """Lock one pending task, skipping rows other workers hold."""
    result = await session.execute(
        select(IssueDeliveryTask.newsletter_issue_id, IssueDeliveryTask.subscriber_email)
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return DeliveryTask(
        newsletter_issue_id=row.newsletter_issue_id,
        subscriber_email=row.subscriber_email,
    )


async def delete_task(session: AsyncSession, task: DeliveryTask) -> None:
    """Remove the task and commit the transaction that claimed it."""
    await session.execute(
        delete(IssueDeliveryTask)
        .where(IssueDeliveryTask.newsletter_issue_id == task.newsletter_issue_id)
        .where(IssueDeliveryTask.subscriber_email == task.subscriber_email)
    )
    await session.commit()


async def get_issue(session: AsyncSession, issue_id: UUID) -> NewsletterIssue:
    result = await session.execute(
        select(NewsletterIssue).where(NewsletterIssue.newsletter_issue_id == issue_id)
    )
    return result.scalar_one()


class DeliveryWorker:
    """Drains the issue delivery queue until stopped."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        email_client: EmailClient,
        empty_queue_delay: float | None = None,
        error_delay: float | None = None,
    ):
        self.session_factory = session_factory
        self.email_client = email_client
        self.empty_queue_delay = (
            settings.worker_empty_queue_delay_seconds
            if empty_queue_delay is None
            else empty_queue_delay
        )
        self.error_delay = (
            settings.worker_error_delay_seconds if error_delay is None else error_delay
        )

    async def try_execute_task(self) -> ExecutionOutcome:
        """Claim, send and retire a single task."""
        async with self.session_factory() as session:
            task = await dequeue_task(session)
            if task is None:
                return ExecutionOutcome.EMPTY_QUEUE

            log = logger.bind(
                newsletter_issue_id=str(task.newsletter_issue_id),
                subscriber_email=task.subscriber_email,
            )
            await self._deliver(session, task, log)
            await delete_task(session, task)

        log.debug("delivery_task_completed")
        return ExecutionOutcome.TASK_COMPLETED

    async def _deliver(self, session: AsyncSession, task: DeliveryTask, log) -> None:
        # Invalid addresses and send failures are dropped rather than retried
        # so one bad recipient never blocks the queue.
        try:
            email = SubscriberEmail.parse(task.subscriber_email)
        except ValidationError as exc:
            log.error(
                "subscriber_skipped_invalid_email",
                error=exc.message,
            )
            return

        issue = await get_issue(session, task.newsletter_issue_id)
        try:
            await self.email_client.send_email(
                email, issue.title, issue.html_content, issue.text_content
            )
        except DeliveryError as exc:
            log.error(
                "issue_delivery_failed_skipping",
                error=exc.message,
                cause=repr(exc.__cause__),
            )

    async def drain_queue(self) -> int:
        """Execute tasks until this worker sees an empty queue."""
        completed = 0
        while await self.try_execute_task() is ExecutionOutcome.TASK_COMPLETED:
            completed += 1
        return completed

    async def run_until_stopped(self, stop_event: asyncio.Event | None = None) -> None:
        """Poll the queue forever, or until stop_event is set."""
        stop_event = stop_event or asyncio.Event()
        logger.info("delivery_worker_started")

        while not stop_event.is_set():
            try:
                outcome = await self.try_execute_task()
            except Exception:
                logger.exception("delivery_worker_cycle_failed")
                await self._sleep(self.error_delay, stop_event)
                continue

            if outcome is ExecutionOutcome.EMPTY_QUEUE:
                await self._sleep(self.empty_queue_delay, stop_event)

        logger.info("delivery_worker_stopped")

    @staticmethod
    async def _sleep(delay: float, stop_event: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
