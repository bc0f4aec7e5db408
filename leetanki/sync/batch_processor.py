"""
Sequential batch processor.

Completion batches can arrive while an earlier one is still being merged
(a paginated fetch streams pages faster than the store absorbs them). The
processor keeps a FIFO queue and runs at most one handler call at a time:

    IDLE --enqueue--> PROCESSING --queue empty--> IDLE

Enqueue never blocks. A failing batch is logged and recorded, and the next
batch runs anyway.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from leetanki.exceptions import BatchProcessingError

BatchHandler = Callable[[Any], Awaitable[Any]]


class ProcessorState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"


@dataclass
class ProcessorStatus:
    """Counters for a processor's lifetime."""

    enqueued: int = 0
    processed: int = 0
    failed: int = 0
    errors: list[BatchProcessingError] = field(default_factory=list)

    @property
    def last_error(self) -> BatchProcessingError | None:
        return self.errors[-1] if self.errors else None


class SequentialBatchProcessor:
    """
    Serializes batch handling.

    Usage:
        processor = SequentialBatchProcessor(merger.merge)
        processor.enqueue(page_one)
        processor.enqueue(page_two)
        await processor.wait_until_drained()
    """

    def __init__(self, handler: BatchHandler, poll_interval: float = 0.2):
        """
        Initialize the processor.

        Args:
            handler: Coroutine function applied to each batch
            poll_interval: Seconds between checks in wait_until_drained
        """
        self.handler = handler
        self.poll_interval = poll_interval
        self.status = ProcessorStatus()

        self._queue: deque[tuple[int, Any]] = deque()
        self._state = ProcessorState.IDLE
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def pending(self) -> int:
        """Batches queued but not yet started."""
        return len(self._queue)

    @property
    def is_drained(self) -> bool:
        return self._state is ProcessorState.IDLE and not self._queue

    def enqueue(self, batch: Any) -> int:
        """
        Queue a batch; starts the drain loop if idle.

        Must be called from inside a running event loop.

        Returns:
            Sequence number of the batch (1-based)
        """
        self.status.enqueued += 1
        number = self.status.enqueued
        self._queue.append((number, batch))

        if self._state is ProcessorState.IDLE:
            self._state = ProcessorState.PROCESSING
            self._task = asyncio.get_running_loop().create_task(self._drain(), name="batch-drain")
        else:
            logger.debug("Batch #{} queued behind {} pending", number, len(self._queue) - 1)

        return number

    async def _drain(self) -> None:
        try:
            while self._queue:
                number, batch = self._queue.popleft()
                try:
                    await self.handler(batch)
                except Exception as exc:  # Isolate failures between batches
                    error = BatchProcessingError(number, exc)
                    self.status.failed += 1
                    self.status.errors.append(error)
                    logger.error("{} - continuing with next batch", error)
                    continue

                self.status.processed += 1
                logger.debug("Batch #{} processed ({} pending)", number, len(self._queue))
        finally:
            self._state = ProcessorState.IDLE
            self._task = None

    async def wait_until_drained(self, timeout: float | None = None) -> ProcessorStatus:
        """
        Park until every queued batch has been handled.

        Args:
            timeout: Give up after this many seconds (None waits indefinitely)

        Raises:
            TimeoutError: the queue did not drain in time
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while not self.is_drained:
            if deadline is not None and loop.time() >= deadline:
                raise TimeoutError(f"Batch queue not drained after {timeout}s ({self.pending} pending)")
            await asyncio.sleep(self.poll_interval)

        return self.status
