"""Bounded task queue that detaches tag processing from the request path.

The webhook endpoint calls ``submit`` and returns as soon as it comes back;
a fixed pool of worker tasks drains the queue on the same event loop.

Guarantees:
- ``submit`` is called once per accepted event and enqueues exactly one
  work item; each item is taken by exactly one worker.
- The PROCESSING record is in the ledger before ``submit`` returns.
- When the queue is full ``submit`` raises QueueFullError and creates no
  record (the caller answers 503 and the Hub may redeliver).

No ordering holds between items, including items for the same repository.
Work still queued or running when ``stop`` is called is abandoned and its
record stays in PROCESSING.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from src.tagbot.metrics import TaggerMetrics
from src.tagbot.processor import TagProcessor
from src.tagbot.webhook.models import DiscussionEvent


logger = structlog.get_logger(__name__)


class QueueFullError(Exception):
    """Raised by ``submit`` when the work queue is at capacity."""

    def __init__(self, max_size: int):
        self.max_size = max_size
        super().__init__(f"Work queue is full ({max_size} items)")


@dataclass(frozen=True)
class WorkItem:
    """One accepted event waiting for a worker."""

    event: DiscussionEvent
    record_id: str
    enqueued_at: float = field(default_factory=time.monotonic)


class TaskScheduler:
    """Fixed-size worker pool draining a bounded asyncio queue.

    Attributes:
        processor: Runs the state machine for each work item.
        worker_count: Number of concurrent workers.
        queue_max_size: Maximum number of items waiting in the queue.
        metrics: Optional Prometheus metrics.
    """

    def __init__(
        self,
        processor: TagProcessor,
        worker_count: int = 4,
        queue_max_size: int = 100,
        metrics: Optional[TaggerMetrics] = None,
    ):
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")
        if queue_max_size < 1:
            raise ValueError("queue_max_size must be at least 1")
        self.processor = processor
        self.worker_count = worker_count
        self.queue_max_size = queue_max_size
        self.metrics = metrics
        self._queue: "asyncio.Queue[WorkItem]" = asyncio.Queue(maxsize=queue_max_size)
        self._workers: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._workers)

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        """Spawn the worker tasks on the running event loop."""
        if self.is_running:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"tagbot-worker-{index}")
            for index in range(self.worker_count)
        ]
        logger.info(
            "Scheduler started",
            worker_count=self.worker_count,
            queue_max_size=self.queue_max_size,
        )

    async def stop(self) -> None:
        """Cancel the workers. In-flight and queued items are abandoned."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        abandoned = self._queue.qsize()
        self._workers = []
        logger.info("Scheduler stopped", abandoned_items=abandoned)

    def submit(self, event: DiscussionEvent) -> str:
        """Record and enqueue an accepted event without waiting for it.

        Returns:
            The id of the PROCESSING operation record.

        Raises:
            QueueFullError: If the queue is at capacity.
        """
        if self._queue.full():
            logger.warning(
                "Work queue full, rejecting event",
                discussion=event.discussion_id,
                queue_max_size=self.queue_max_size,
            )
            raise QueueFullError(self.queue_max_size)

        record_id = self.processor.open_operation(event)
        self._queue.put_nowait(WorkItem(event=event, record_id=record_id))
        self._update_depth()

        logger.info(
            "Event scheduled",
            operation_id=record_id,
            discussion=event.discussion_id,
            queue_depth=self._queue.qsize(),
        )
        return record_id

    async def join(self) -> None:
        """Wait until every enqueued item has been processed."""
        await self._queue.join()

    async def _worker(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            self._update_depth()
            try:
                await self.processor.process(item.event, item.record_id)
            except Exception as e:
                logger.exception(
                    "Worker failed to process operation",
                    worker=index,
                    operation_id=item.record_id,
                )
                self._fail(item.record_id, f"Unexpected processing failure: {e}")
            finally:
                self._queue.task_done()

    def _fail(self, record_id: str, message: str) -> None:
        try:
            self.processor.fail(record_id, message)
        except Exception as e:
            # Record already terminal or evicted; nothing left to update.
            logger.warning("Could not mark operation failed", operation_id=record_id, error=str(e))

    def _update_depth(self) -> None:
        if self.metrics is not None:
            self.metrics.set_queue_depth(self._queue.qsize())
