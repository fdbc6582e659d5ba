"""
ExportCoordinator: direct send, spillover on failure, inline drain.

    producer ──export()──▶ transport ──ok──────────────▶ inline drain ─▶ True
                               │
                               └─fail─▶ queue.enqueue ──ok──▶ inline drain ─▶ True
                                              │
                                              └─fail─▶ data loss ─▶ False
"""

from __future__ import annotations

import asyncio
from typing import Generic, Optional

from loguru import logger

from ..errors import QueueFullError, QueuePersistError
from ..metrics.registry import (
    SPOOL_DATA_LOSS_TOTAL,
    SPOOL_EXPORTS_TOTAL,
    SPOOL_SPILLED_TOTAL,
)
from ..storage.base import DurableQueue
from .drain import drain_queue, refresh_depth, send_with_deadline
from .events import SpoolEvent, SpoolEventBus, SpoolEventKind, spool_events
from .policy import DrainPolicy, OutcomeClassifier, default_outcome_classifier
from .types import BatchCodec, BytesCodec, DrainResult, Transport, T


class ExportCoordinator(Generic[T]):
    """Exports telemetry batches without losing them to collector outages.

    Each call sends the batch directly. A failed send spills the batch to the
    durable queue; the call then drains previously spilled items on the
    caller's task. The inline drain stops at the first failing item, so one
    call performs at most one failed redelivery.

    Args:
        transport: Sends requests to the collector
        queue: Durable spill queue, shared with any DrainScheduler
        codec: Converts requests to and from stored bytes (identity by default)
        policy: Lease/renewal durations and redelivery deadline
        export_timeout_ms: Default deadline for the direct send
        inline_drain: Drain the queue after every export call
        classifier: Maps exceptions escaping the transport to an outcome
        bus: Event bus for spill/loss events (process-wide bus by default)
        coord_id: Name used in logs and events

    Example:
        coord = ExportCoordinator(HttpTransport(endpoint), FileBlobQueue(path))
        ok = await coord.export(payload)
    """

    def __init__(
        self,
        transport: Transport[T],
        queue: DurableQueue,
        *,
        codec: Optional[BatchCodec[T]] = None,
        policy: Optional[DrainPolicy] = None,
        export_timeout_ms: int = 10_000,
        inline_drain: bool = True,
        classifier: OutcomeClassifier = default_outcome_classifier,
        bus: Optional[SpoolEventBus] = None,
        coord_id: str = "exporter",
    ):
        if export_timeout_ms <= 0:
            raise ValueError("export_timeout_ms must be > 0")

        self._transport = transport
        self._queue = queue
        self._codec: BatchCodec[T] = codec or BytesCodec()  # type: ignore[assignment]
        self._policy = policy or DrainPolicy()
        self._export_timeout = export_timeout_ms / 1000
        self._inline_drain = inline_drain
        self._classifier = classifier
        self._bus = bus or spool_events()
        self.coord_id = coord_id

    @property
    def queue(self) -> DurableQueue:
        return self._queue

    @property
    def policy(self) -> DrainPolicy:
        return self._policy

    async def export(
        self,
        batch: T,
        *,
        timeout: float | None = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> bool:
        """Export one batch.

        Args:
            batch: Request to send
            timeout: Direct-send deadline in seconds (default from constructor)
            cancel: Optional signal. Firing it aborts the in-flight send; the
                batch is then spilled and no inline drain happens.

        Returns:
            True if the batch was delivered or safely queued, False if it
            could not be persisted and is lost.
        """
        timeout = self._export_timeout if timeout is None else timeout
        result = await send_with_deadline(
            self._transport,
            batch,
            timeout,
            cancel=cancel,
            classifier=self._classifier,
            path="direct",
        )

        if result.delivered:
            SPOOL_EXPORTS_TOTAL.labels(outcome="delivered").inc()
        else:
            logger.warning(f"[{self.coord_id}] failed to reach collector: {result.error}")
            if not await self._spill(batch):
                return False

        if cancel is not None and cancel.is_set():
            logger.debug(f"[{self.coord_id}] export cancelled; skipping inline drain")
            return True

        if self._inline_drain:
            await self.drain(cancel=cancel)
        return True

    async def drain(self, *, cancel: Optional[asyncio.Event] = None) -> DrainResult:
        """Run one inline drain pass (stops at the first failed redelivery)."""
        result = await drain_queue(
            self._queue,
            self._transport,
            self._codec,
            self._policy,
            stop_on_failure=True,
            cancel=cancel,
            classifier=self._classifier,
            bus=self._bus,
            strategy="inline",
            source=self.coord_id,
        )
        if result.attempted:
            logger.debug(
                f"[{self.coord_id}] inline drain: delivered={result.delivered} "
                f"failed={result.failed} dropped={result.dropped} stop={result.stop_reason}"
            )
            await refresh_depth(self._queue, self.coord_id)
        return result

    async def _spill(self, batch: T) -> bool:
        try:
            data = self._codec.encode(batch)
            handle = await self._queue.enqueue(data)
        except QueuePersistError as exc:
            reason = "queue_full" if isinstance(exc, QueueFullError) else "persist_failed"
            logger.error(f"[{self.coord_id}] telemetry batch lost, cannot persist ({reason}): {exc}")
            SPOOL_EXPORTS_TOTAL.labels(outcome="lost").inc()
            SPOOL_DATA_LOSS_TOTAL.labels(reason=reason).inc()
            await self._bus.publish(
                SpoolEvent(SpoolEventKind.DATA_LOSS, self.coord_id, reason=reason)
            )
            return False

        logger.debug(f"[{self.coord_id}] batch spilled to durable queue as {handle}")
        SPOOL_EXPORTS_TOTAL.labels(outcome="spilled").inc()
        SPOOL_SPILLED_TOTAL.inc()
        await refresh_depth(self._queue, self.coord_id)
        await self._bus.publish(
            SpoolEvent(SpoolEventKind.SPILLED, self.coord_id, handle=handle, size_bytes=len(data))
        )
        return True
