"""
DrainScheduler: periodic background redelivery of spilled batches.

Runs off the producers' critical path. Unlike the inline drain, a failed
redelivery does not end the cycle: the item's lease is renewed for the
cool-down period and the cycle moves on to the next leasable item.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional

from loguru import logger

from ..errors import QueueError
from ..metrics.registry import SPOOL_DRAIN_CYCLES_TOTAL
from ..storage.base import DurableQueue
from .drain import drain_queue, refresh_depth
from .events import SpoolEventBus, spool_events
from .policy import DrainPolicy, OutcomeClassifier, default_outcome_classifier
from .types import BatchCodec, BytesCodec, DrainResult, Transport, T


@dataclass(frozen=True)
class SchedulerHealth:
    running: bool
    cycle_in_progress: bool
    cycles_completed: int
    ticks_skipped: int
    last_result: DrainResult | None


class DrainScheduler(Generic[T]):
    """Drains the durable queue every ``interval_ms``.

    Ticks are single-flight: a tick that arrives while a cycle is still running
    (e.g. a manual ``run_once`` overlapping the timer) is skipped, not queued.

    Args:
        transport: Sends requests to the collector
        queue: Durable spill queue, shared with ExportCoordinator instances
        codec: Converts stored bytes back to requests (identity by default)
        policy: Lease/renewal durations and redelivery deadline
        interval_ms: Delay between cycles
        shutdown_timeout_ms: How long ``stop`` waits for an in-flight cycle
            before cancelling it
        maintenance: Optional coroutine run before every cycle (e.g. pruning
            expired items)
        classifier: Maps exceptions escaping the transport to an outcome
        bus: Event bus for redelivery events (process-wide bus by default)
        scheduler_id: Name used in logs and events
    """

    def __init__(
        self,
        transport: Transport[T],
        queue: DurableQueue,
        *,
        codec: Optional[BatchCodec[T]] = None,
        policy: Optional[DrainPolicy] = None,
        interval_ms: int = 120_000,
        shutdown_timeout_ms: int = 5_000,
        maintenance: Optional[Callable[[], Awaitable[int]]] = None,
        classifier: OutcomeClassifier = default_outcome_classifier,
        bus: Optional[SpoolEventBus] = None,
        scheduler_id: str = "drain-scheduler",
    ):
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        if shutdown_timeout_ms < 0:
            raise ValueError("shutdown_timeout_ms must be >= 0")

        self._transport = transport
        self._queue = queue
        self._codec: BatchCodec[T] = codec or BytesCodec()  # type: ignore[assignment]
        self._policy = policy or DrainPolicy()
        self._interval = interval_ms / 1000
        self._shutdown_timeout = shutdown_timeout_ms / 1000
        self._maintenance = maintenance
        self._classifier = classifier
        self._bus = bus or spool_events()
        self.scheduler_id = scheduler_id

        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._cycles = 0
        self._skipped = 0
        self._last: DrainResult | None = None

    # ---------- lifecycle ----------

    async def __aenter__(self) -> "DrainScheduler[T]":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"{self.scheduler_id}-loop")
        logger.info(f"[{self.scheduler_id}] started (interval={self._interval:.1f}s)")

    async def stop(self, timeout: float | None = None) -> None:
        """Stop the periodic loop.

        An in-flight send may finish within ``timeout`` seconds (default
        ``shutdown_timeout_ms``); after that the cycle is cancelled and the
        item it held becomes leasable again once its lease expires.
        """
        if self._task is None:
            return
        timeout = self._shutdown_timeout if timeout is None else timeout
        self._stopping.set()
        task, self._task = self._task, None

        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.scheduler_id}] cycle still running after {timeout:.1f}s; cancelling")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(f"[{self.scheduler_id}] stopped")

    # ---------- cycles ----------

    async def run_once(self) -> Optional[DrainResult]:
        """Run one drain cycle now.

        Returns:
            The cycle result, or None if another cycle was already running.
        """
        if self._cycle_lock.locked():
            self._skipped += 1
            SPOOL_DRAIN_CYCLES_TOTAL.labels(result="skipped").inc()
            logger.debug(f"[{self.scheduler_id}] cycle already in progress; tick skipped")
            return None

        async with self._cycle_lock:
            if self._maintenance is not None:
                try:
                    removed = await self._maintenance()
                except QueueError as exc:
                    logger.warning(f"[{self.scheduler_id}] maintenance failed: {exc}")
                    removed = 0
                if removed:
                    logger.info(f"[{self.scheduler_id}] maintenance removed {removed} item(s)")

            result = await drain_queue(
                self._queue,
                self._transport,
                self._codec,
                self._policy,
                stop_on_failure=False,
                halt=self._stopping,
                classifier=self._classifier,
                bus=self._bus,
                strategy="scheduled",
                source=self.scheduler_id,
            )
            self._cycles += 1
            self._last = result
            SPOOL_DRAIN_CYCLES_TOTAL.labels(result="completed").inc()
            await refresh_depth(self._queue, self.scheduler_id)

        if result.attempted:
            logger.info(
                f"[{self.scheduler_id}] cycle: delivered={result.delivered} "
                f"failed={result.failed} dropped={result.dropped} stop={result.stop_reason}"
            )
        return result

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except Exception as exc:
                # Next tick retries
                SPOOL_DRAIN_CYCLES_TOTAL.labels(result="error").inc()
                logger.error(f"[{self.scheduler_id}] drain cycle failed: {type(exc).__name__}: {exc}")

    # ---------- health ----------

    def health(self) -> SchedulerHealth:
        return SchedulerHealth(
            running=self.running,
            cycle_in_progress=self._cycle_lock.locked(),
            cycles_completed=self._cycles,
            ticks_skipped=self._skipped,
            last_result=self._last,
        )
