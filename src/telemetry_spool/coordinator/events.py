"""
Spool event system.

In-process pub/sub for spillover and data-loss signals. Operators hook in
subscribers (alerting, logging, dashboards) to notice prolonged collector
outages without polling the queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from loguru import logger


class SpoolEventKind(str, Enum):
    """What happened to a batch."""

    SPILLED = "spilled"  # direct send failed, batch persisted
    DATA_LOSS = "data_loss"  # batch dropped permanently
    REDELIVERED = "redelivered"  # queued item sent and deleted
    REDELIVERY_FAILED = "redelivery_failed"  # queued item kept, lease renewed


@dataclass(frozen=True)
class SpoolEvent:
    """Immutable spool event.

    Attributes:
        kind: Event type
        source: Emitting component (e.g., "traces-exporter", "drain-scheduler")
        handle: Queue item handle, when one exists
        reason: Optional context (e.g., "queue_full", "undecodable")
        size_bytes: Payload size, when known
    """

    kind: SpoolEventKind
    source: str
    handle: str | None = None
    reason: str | None = None
    size_bytes: int | None = None

    @property
    def is_loss(self) -> bool:
        return self.kind is SpoolEventKind.DATA_LOSS


class SpoolSubscriber(Protocol):
    """Async callable accepting SpoolEvent. Exceptions are caught and logged."""

    async def __call__(self, event: SpoolEvent) -> None: ...


class SpoolEventBus:
    """In-process pub/sub bus for spool events.

    Subscribers are isolated from each other: one failing subscriber does not
    affect the rest, and never affects the export path. Best-effort delivery.

    Example:
        bus = SpoolEventBus()

        async def on_event(event: SpoolEvent):
            if event.is_loss:
                await page_oncall(event)

        bus.subscribe(on_event)
    """

    def __init__(self) -> None:
        self._subs: list[SpoolSubscriber] = []

    def subscribe(self, callback: SpoolSubscriber) -> None:
        if callback not in self._subs:
            self._subs.append(callback)
            logger.debug(f"Spool subscriber added (total: {len(self._subs)})")

    def unsubscribe(self, callback: SpoolSubscriber) -> None:
        """Remove a subscriber. No-op if it was never added."""
        try:
            self._subs.remove(callback)
            logger.debug(f"Spool subscriber removed (total: {len(self._subs)})")
        except ValueError:
            pass

    async def publish(self, event: SpoolEvent) -> None:
        """Publish event to all subscribers in registration order."""
        if not self._subs:
            return

        # Iterate over copy to allow unsubscribe during iteration
        for callback in list(self._subs):
            try:
                await callback(event)
            except Exception as exc:
                logger.debug(f"Spool subscriber error (ignored): {type(exc).__name__}: {exc}")

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)


# --- Singleton accessor for in-process use ---

_bus: Optional[SpoolEventBus] = None


def spool_events() -> SpoolEventBus:
    """Get the process-wide SpoolEventBus.

    Components use it when no bus is injected explicitly.

    Example:
        from telemetry_spool.coordinator import spool_events

        spool_events().subscribe(my_callback)
    """
    global _bus
    if _bus is None:
        _bus = SpoolEventBus()
        logger.debug("SpoolEventBus singleton initialized")
    return _bus
