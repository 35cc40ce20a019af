"""Delivery worker process entry point and in-process task helpers."""

import asyncio
import signal
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsletter.config import settings
from newsletter.database import create_engine, create_session_factory
from newsletter.logging import setup_logging
from newsletter.services.delivery import DeliveryWorker
from newsletter.services.email_client import EmailClient

logger = structlog.get_logger(__name__)


@dataclass
class RunningWorker:
    task: asyncio.Task
    stop_event: asyncio.Event

    async def stop(self) -> None:
        self.stop_event.set()
        await self.task


def start_delivery_worker(
    session_factory: async_sessionmaker[AsyncSession],
    email_client: EmailClient,
) -> RunningWorker:
    """Run a DeliveryWorker as a background task on the current loop."""
    stop_event = asyncio.Event()
    worker = DeliveryWorker(session_factory, email_client)
    task = asyncio.create_task(
        worker.run_until_stopped(stop_event), name="issue-delivery-worker"
    )
    return RunningWorker(task=task, stop_event=stop_event)


async def run_worker_until_stopped() -> None:
    """Standalone worker with its own engine; stops on SIGINT/SIGTERM."""
    engine = create_engine()
    email_client = EmailClient.from_settings(settings)
    running = start_delivery_worker(create_session_factory(engine), email_client)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, running.stop_event.set)

    try:
        await running.task
    finally:
        await email_client.aclose()
        await engine.dispose()


def main() -> None:
    setup_logging(settings)
    asyncio.run(run_worker_until_stopped())


if __name__ == "__main__":
    main()
