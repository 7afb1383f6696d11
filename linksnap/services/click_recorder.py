import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from ..observability import CLICK_EVENTS_DROPPED, CLICK_EVENTS_FAILED, CLICK_EVENTS_RECORDED
from ..schemas import ClickEventCreate
from ..stores.base import UrlStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClickContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None


@dataclass(frozen=True)
class ClickJob:
    record_id: uuid.UUID
    clicked_at: datetime
    context: ClickContext


class ClickRecorder:
    def __init__(self, store: UrlStore, queue_size: int = 10000, workers: int = 2, drain_timeout: float = 2.0):
        self.store = store
        self.worker_count = workers
        self.drain_timeout = drain_timeout
        self._queue: asyncio.Queue[ClickJob] = asyncio.Queue(maxsize=queue_size)
        self._workers: list[asyncio.Task] = []

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"click-recorder-{i}")
            for i in range(self.worker_count)
        ]
        logger.info(f"Click recorder started with {self.worker_count} workers")

    def submit(self, record_id: uuid.UUID, context: Optional[ClickContext] = None) -> bool:
        """Queue a click for recording. Never blocks; drops the click when the queue is full."""
        job = ClickJob(
            record_id=record_id,
            clicked_at=datetime.now(timezone.utc),
            context=context or ClickContext(),
        )
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            CLICK_EVENTS_DROPPED.inc()
            logger.warning("Click queue full, dropping click", extra={"record_id": record_id})
            return False
        return True

    async def _worker(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self.record(job)
            finally:
                self._queue.task_done()

    async def record(self, job: ClickJob) -> None:
        try:
            await self.store.increment_click_count(job.record_id)
        except Exception:
            CLICK_EVENTS_FAILED.labels(operation="increment").inc()
            logger.exception("Failed to increment click count", extra={"record_id": job.record_id})

        event = ClickEventCreate(
            url_id=job.record_id,
            clicked_at=job.clicked_at,
            ip_address=job.context.ip_address,
            user_agent=job.context.user_agent,
            referrer=job.context.referrer,
        )
        try:
            await self.store.append_click_event(event)
        except Exception:
            CLICK_EVENTS_FAILED.labels(operation="append").inc()
            logger.exception("Failed to append click event", extra={"record_id": job.record_id})
        else:
            CLICK_EVENTS_RECORDED.inc()

    async def drain(self) -> None:
        """Wait until every queued click has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        if self._workers and self.drain_timeout > 0:
            try:
                await asyncio.wait_for(self.drain(), timeout=self.drain_timeout)
            except asyncio.TimeoutError:
                pass
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        if self.pending:
            logger.warning(f"Click recorder stopped with {self.pending} clicks abandoned")
