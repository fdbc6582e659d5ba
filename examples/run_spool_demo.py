"""
Demo: durable spillover during a simulated collector outage.

Shows:
- Prometheus metrics (exposed on :8000/metrics)
- Spillover to the file-backed durable queue while the collector is down
- Inline drain once the collector is back
- Periodic DrainScheduler picking up the rest
- Data-loss events on the spool event bus
"""

import asyncio
import tempfile

from loguru import logger
from prometheus_client import start_http_server

from telemetry_spool.coordinator import (
    DrainPolicy,
    DrainScheduler,
    ExportCoordinator,
    SendResult,
    SpoolEvent,
    spool_events,
)
from telemetry_spool.storage import FileBlobQueue


class FlakyCollector:
    """Transport that is down for a while, then recovers."""

    def __init__(self):
        self.up = False
        self.received: list[bytes] = []

    async def send(self, request: bytes, *, timeout: float) -> SendResult:
        await asyncio.sleep(0.005)  # simulate network I/O
        if not self.up:
            return SendResult.transient("connection refused")
        self.received.append(request)
        return SendResult.ok()


async def on_event(event: SpoolEvent):
    if event.is_loss:
        logger.error(f"💥 Data loss from {event.source}: {event.reason}")


async def main():
    start_http_server(8000)
    logger.info("📊 Prometheus metrics available at http://localhost:8000/metrics")

    spool_events().subscribe(on_event)

    storage = tempfile.mkdtemp(prefix="spool-demo-")
    queue = FileBlobQueue(storage, max_bytes=1_000_000)
    logger.info(f"📁 Durable queue: {storage}")

    collector = FlakyCollector()
    policy = DrainPolicy(lease_ms=3000, renewal_ms=1000, redelivery_timeout_ms=2000)
    coord = ExportCoordinator(collector, queue, policy=policy, coord_id="demo")

    logger.info("🔌 Collector DOWN, exporting 50 batches...")
    for i in range(50):
        await coord.export(f"batch-{i}".encode())
    logger.info(f"Queue depth: {await queue.depth()}")

    collector.up = True
    logger.info("✅ Collector UP, next export drains inline...")
    await coord.export(b"batch-50")
    logger.info(f"Queue depth: {await queue.depth()} | delivered: {len(collector.received)}")

    async with DrainScheduler(collector, queue, policy=policy, interval_ms=500) as scheduler:
        await asyncio.sleep(1.5)
        h = scheduler.health()
        logger.info(f"Scheduler cycles: {h.cycles_completed} | last: {h.last_result}")

    logger.info(f"🏁 Done. Delivered {len(collector.received)} batches")


if __name__ == "__main__":
    asyncio.run(main())
