"""
Wiring: build a ready-to-use exporter (transport + durable queue +
coordinator + optional drain scheduler) from runtime settings.
"""

from __future__ import annotations

from typing import Optional

from loguru import logger

from .coordinator import (
    DrainPolicy,
    DrainScheduler,
    ExportCoordinator,
    SpoolEventBus,
    SpoolRuntimeSettings,
    get_settings,
)
from .storage import FileBlobQueue
from .transport import HttpTransport, signal_endpoint


class SpoolExporter:
    """Owns the spool components for one collector endpoint.

    Example:
        async with SpoolExporter.from_settings() as exporter:
            await exporter.export(payload)
    """

    def __init__(
        self,
        transport: HttpTransport,
        queue: FileBlobQueue,
        coordinator: ExportCoordinator[bytes],
        scheduler: Optional[DrainScheduler[bytes]] = None,
    ):
        self.transport = transport
        self.queue = queue
        self.coordinator = coordinator
        self.scheduler = scheduler

    @classmethod
    def from_settings(
        cls,
        settings: Optional[SpoolRuntimeSettings] = None,
        *,
        bus: Optional[SpoolEventBus] = None,
        name: str = "exporter",
    ) -> "SpoolExporter":
        cfg = settings or get_settings()
        policy = DrainPolicy(
            lease_ms=cfg.lease_ms,
            renewal_ms=cfg.renewal_ms,
            redelivery_timeout_ms=cfg.redelivery_timeout_ms,
        )
        url = signal_endpoint(cfg.endpoint, cfg.signal) if cfg.signal else cfg.endpoint
        transport = HttpTransport(url, headers=cfg.headers)
        queue = FileBlobQueue(
            cfg.storage_dir,
            max_bytes=cfg.max_storage_bytes,
            retention_ms=cfg.retention_ms,
        )
        coordinator = ExportCoordinator[bytes](
            transport,
            queue,
            policy=policy,
            export_timeout_ms=cfg.export_timeout_ms,
            inline_drain=cfg.inline_drain,
            bus=bus,
            coord_id=name,
        )
        scheduler = None
        if cfg.scheduled_drain:
            scheduler = DrainScheduler[bytes](
                transport,
                queue,
                policy=policy,
                interval_ms=cfg.drain_interval_ms,
                shutdown_timeout_ms=cfg.shutdown_timeout_ms,
                maintenance=queue.prune,
                bus=bus,
                scheduler_id=f"{name}-drain",
            )
        logger.debug(
            f"Spool exporter '{name}' -> {url} "
            f"(storage={cfg.storage_dir}, inline={cfg.inline_drain}, scheduled={cfg.scheduled_drain})"
        )
        return cls(transport, queue, coordinator, scheduler)

    async def __aenter__(self) -> "SpoolExporter":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        await self.transport.start()
        if self.scheduler is not None:
            await self.scheduler.start()

    async def stop(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        await self.transport.aclose()

    async def export(self, batch: bytes, **kwargs) -> bool:
        return await self.coordinator.export(batch, **kwargs)
