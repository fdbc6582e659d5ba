"""
Lease/send/delete protocol shared by the inline and scheduled drains.

A drain pass repeatedly checks out the next leasable item, sends it with a
fresh deadline and then either deletes it (delivered) or renews its lease
(failed). Callers choose what a failure means for the rest of the pass:

- inline (``stop_on_failure=True``): end the pass so a producer call never
  loops on a dead collector
- scheduled (``stop_on_failure=False``): keep going with the next item
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from loguru import logger

from ..errors import QueueError, QueueReadError
from ..metrics.registry import (
    SPOOL_DATA_LOSS_TOTAL,
    SPOOL_QUEUE_DEPTH,
    SPOOL_REDELIVERY_TOTAL,
    SPOOL_SEND_LATENCY_MS,
)
from ..storage.base import DurableQueue, LeasedItem
from .events import SpoolEvent, SpoolEventBus, SpoolEventKind
from .policy import DrainPolicy, OutcomeClassifier, default_outcome_classifier
from .types import BatchCodec, DrainResult, SendResult, StopReason, Transport, T


def _consume_result(fut: asyncio.Future) -> None:
    # Retrieve late exceptions of abandoned sends so asyncio doesn't log them
    if not fut.cancelled():
        fut.exception()


async def send_with_deadline(
    transport: Transport[T],
    request: T,
    timeout: float,
    *,
    cancel: Optional[asyncio.Event] = None,
    classifier: OutcomeClassifier = default_outcome_classifier,
    path: str = "direct",
) -> SendResult:
    """Send one request, bounded by ``timeout`` seconds and ``cancel``.

    Never raises for transport problems: deadline expiry, a fired cancel
    signal and exceptions escaping the transport all come back as a failed
    SendResult. Task cancellation of the caller still propagates.
    """
    started = time.perf_counter()
    send = asyncio.ensure_future(transport.send(request, timeout=timeout))
    send.add_done_callback(_consume_result)
    waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
    pending = {send} if waiter is None else {send, waiter}

    try:
        done, _ = await asyncio.wait(pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if send not in done:
            if waiter is not None and waiter in done:
                return SendResult.transient("cancelled")
            return SendResult.transient(f"deadline exceeded after {timeout:.3f}s")
        try:
            return send.result()
        except Exception as exc:
            return SendResult(classifier(exc), f"{type(exc).__name__}: {exc}")
    finally:
        for fut in (send, waiter):
            if fut is not None and not fut.done():
                fut.cancel()
        SPOOL_SEND_LATENCY_MS.labels(path=path).observe((time.perf_counter() - started) * 1000)


async def _publish(bus: SpoolEventBus | None, event: SpoolEvent) -> None:
    if bus is not None:
        await bus.publish(event)


async def _renew(item: LeasedItem, policy: DrainPolicy, source: str) -> None:
    if not await item.extend_lease(policy.renewal_ms):
        logger.debug(f"[{source}] lease on {item.handle} lost before renewal")


async def refresh_depth(queue: DurableQueue, source: str) -> None:
    """Update the queue depth gauge; storage errors are logged, not raised."""
    try:
        SPOOL_QUEUE_DEPTH.set(await queue.depth())
    except QueueError as exc:
        logger.warning(f"[{source}] cannot read queue depth: {exc}")


async def drain_queue(
    queue: DurableQueue,
    transport: Transport[T],
    codec: BatchCodec[T],
    policy: DrainPolicy,
    *,
    stop_on_failure: bool,
    cancel: Optional[asyncio.Event] = None,
    halt: Optional[asyncio.Event] = None,
    classifier: OutcomeClassifier = default_outcome_classifier,
    bus: SpoolEventBus | None = None,
    strategy: str = "inline",
    source: str = "spool",
) -> DrainResult:
    """Redeliver queued items until none is leasable.

    Each item is attempted at most once per pass. If the queue hands back an
    item that already failed in this pass (its renewed lease ran out while the
    pass was still going), the lease is renewed again and the pass moves on.
    The pass ends with "repeat" once every failed item has come back in a row
    with no new item in between.

    ``cancel`` stops the pass and aborts an in-flight send. ``halt`` only
    stops the pass before the next checkout.

    Returns:
        DrainResult. ``stop_reason`` is "empty" when no leasable item was
        left, which includes items leased by other holders, and "error" when
        the queue itself could not be read.
    """
    delivered = failed = dropped = 0
    failed_handles: set[str] = set()
    repeats = 0
    stop_reason: StopReason = "empty"

    while True:
        if (cancel is not None and cancel.is_set()) or (halt is not None and halt.is_set()):
            stop_reason = "cancelled"
            break

        try:
            item = await queue.try_dequeue_next(policy.lease_ms)
        except QueueError as exc:
            logger.error(f"[{source}] cannot check out queued items: {exc}")
            stop_reason = "error"
            break
        if item is None:
            break

        handle = item.handle
        if handle in failed_handles:
            await _renew(item, policy, source)
            repeats += 1
            if repeats >= len(failed_handles):
                stop_reason = "repeat"
                break
            continue
        repeats = 0

        try:
            data = await item.read()
        except QueueReadError as exc:
            logger.warning(f"[{source}] cannot read queued item {handle}: {exc}")
            await _renew(item, policy, source)
            SPOOL_REDELIVERY_TOTAL.labels(strategy=strategy, outcome="failure").inc()
            failed += 1
            failed_handles.add(handle)
            if stop_on_failure:
                stop_reason = "failure"
                break
            continue

        try:
            request = codec.decode(data)
        except Exception as exc:
            # Undecodable payloads can never be sent
            logger.error(f"[{source}] dropping undecodable item {handle}: {exc}")
            await item.delete()
            SPOOL_DATA_LOSS_TOTAL.labels(reason="undecodable").inc()
            dropped += 1
            await _publish(
                bus,
                SpoolEvent(
                    SpoolEventKind.DATA_LOSS,
                    source,
                    handle=handle,
                    reason="undecodable",
                    size_bytes=len(data),
                ),
            )
            continue

        result = await send_with_deadline(
            transport,
            request,
            policy.redelivery_timeout,
            cancel=cancel,
            classifier=classifier,
            path=strategy,
        )

        if result.delivered:
            if not await item.delete():
                logger.debug(f"[{source}] {handle} sent but lease was lost; duplicate possible")
            SPOOL_REDELIVERY_TOTAL.labels(strategy=strategy, outcome="success").inc()
            delivered += 1
            await _publish(
                bus,
                SpoolEvent(
                    SpoolEventKind.REDELIVERED, source, handle=handle, size_bytes=len(data)
                ),
            )
            continue

        await _renew(item, policy, source)
        if cancel is not None and cancel.is_set():
            stop_reason = "cancelled"
            break

        logger.warning(
            f"[{source}] redelivery of {handle} failed ({result.error}); "
            f"lease renewed for {policy.renewal_ms}ms"
        )
        SPOOL_REDELIVERY_TOTAL.labels(strategy=strategy, outcome="failure").inc()
        failed += 1
        failed_handles.add(handle)
        await _publish(
            bus,
            SpoolEvent(
                SpoolEventKind.REDELIVERY_FAILED,
                source,
                handle=handle,
                reason=result.error,
                size_bytes=len(data),
            ),
        )
        if stop_on_failure:
            stop_reason = "failure"
            break

    return DrainResult(
        delivered=delivered, failed=failed, dropped=dropped, stop_reason=stop_reason
    )
