from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from .coordinator import SpoolRuntimeSettings
from .errors import StorageConfigError
from .exporter import SpoolExporter

app = typer.Typer(help="telemetry-spool operational CLI")


def storage_opt() -> Optional[Path]:
    return typer.Option(None, "--storage-dir", help="Spool directory (default: SPOOL_STORAGE_DIR)")


def endpoint_opt() -> Optional[str]:
    return typer.Option(None, "--endpoint", help="Collector URL (default: SPOOL_ENDPOINT)")


def _exporter(
    storage_dir: Optional[Path], endpoint: Optional[str] = None, **overrides
) -> tuple[SpoolRuntimeSettings, SpoolExporter]:
    if storage_dir is not None:
        overrides["storage_dir"] = storage_dir
    if endpoint is not None:
        overrides["endpoint"] = endpoint
    try:
        cfg = SpoolRuntimeSettings(**overrides)
        return cfg, SpoolExporter.from_settings(cfg, name="cli")
    except (ValueError, StorageConfigError) as e:
        logger.error(f"Invalid spool configuration: {e}")
        sys.exit(1)


@app.command()
def status(storage_dir: Optional[Path] = storage_opt()):
    """Show queue depth and stored bytes."""
    cfg, exporter = _exporter(storage_dir)

    async def _run():
        return await exporter.queue.depth(), await exporter.queue.size_bytes()

    depth, size = asyncio.run(_run())
    typer.echo(
        json.dumps(
            {
                "storage_dir": str(cfg.storage_dir),
                "depth": depth,
                "bytes": size,
                "max_bytes": cfg.max_storage_bytes,
            },
            indent=2,
        )
    )


@app.command()
def drain(storage_dir: Optional[Path] = storage_opt(), endpoint: Optional[str] = endpoint_opt()):
    """Run one scheduled-style drain cycle now."""
    _, exporter = _exporter(storage_dir, endpoint, scheduled_drain=True)
    scheduler = exporter.scheduler
    if scheduler is None:
        logger.error("Scheduled drain is not configured")
        sys.exit(1)

    async def _run():
        async with exporter.transport:
            return await scheduler.run_once()

    result = asyncio.run(_run())
    if result is None:
        logger.warning("Drain cycle skipped")
        sys.exit(1)
    typer.echo(
        json.dumps(
            {
                "delivered": result.delivered,
                "failed": result.failed,
                "dropped": result.dropped,
                "stop_reason": result.stop_reason,
            },
            indent=2,
        )
    )
    if result.failed:
        logger.warning(f"{result.failed} item(s) could not be redelivered")
    else:
        logger.success("Drain cycle complete")


@app.command()
def prune(storage_dir: Optional[Path] = storage_opt()):
    """Remove items past retention and abandoned temp files."""
    cfg, exporter = _exporter(storage_dir)
    removed = asyncio.run(exporter.queue.prune())
    logger.info(f"Removed {removed} expired item(s) from {cfg.storage_dir}")


@app.command()
def send(
    payload: Path = typer.Argument(..., exists=True, dir_okay=False, help="Encoded export request"),
    storage_dir: Optional[Path] = storage_opt(),
    endpoint: Optional[str] = endpoint_opt(),
):
    """Export one encoded batch file through the spool."""
    _, exporter = _exporter(storage_dir, endpoint, scheduled_drain=False)

    async def _run():
        async with exporter:
            return await exporter.export(payload.read_bytes())

    if asyncio.run(_run()):
        logger.success(f"{payload.name} delivered or queued")
    else:
        logger.error(f"{payload.name} could not be delivered or persisted")
        sys.exit(1)


if __name__ == "__main__":
    app()
