"""
Unit tests for the operational CLI.
"""

import json

from typer.testing import CliRunner

from telemetry_spool.cli import app
from telemetry_spool.storage import FileBlobQueue

runner = CliRunner()


def _seed(path, *payloads):
    import asyncio

    q = FileBlobQueue(path)

    async def _run():
        for p in payloads:
            await q.enqueue(p)

    asyncio.run(_run())


def test_status_reports_depth(isolated_env):
    spool = isolated_env / "spool"
    _seed(spool, b"one", b"two")

    result = runner.invoke(app, ["status", "--storage-dir", str(spool)])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["depth"] == 2
    assert data["bytes"] == 6


def test_drain_empty_queue(isolated_env):
    spool = isolated_env / "spool"

    result = runner.invoke(
        app, ["drain", "--storage-dir", str(spool), "--endpoint", "http://collector.test:4318"]
    )

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["delivered"] == 0
    assert data["stop_reason"] == "empty"


def test_prune(isolated_env):
    result = runner.invoke(app, ["prune", "--storage-dir", str(isolated_env / "spool")])
    assert result.exit_code == 0


def test_invalid_storage_dir(isolated_env):
    blocker = isolated_env / "file"
    blocker.write_text("x")

    result = runner.invoke(app, ["status", "--storage-dir", str(blocker)])
    assert result.exit_code == 1
