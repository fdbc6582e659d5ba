"""
Pytest configuration and fixtures for telemetry-spool.

Provides cross-platform event loop configuration and test utilities.
"""

import asyncio
import os
import sys

import pytest

from telemetry_spool.coordinator import SpoolEventBus
from telemetry_spool.storage import FileBlobQueue

from .helpers import FakeClock

# Set policy *before* pytest-asyncio creates any loops
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def clock():
    """Controllable wall clock for lease expiry."""
    return FakeClock()


@pytest.fixture
def queue(tmp_path, clock):
    """File-backed durable queue in a temp directory, driven by the fake clock."""
    return FileBlobQueue(tmp_path / "spool", clock=clock)


@pytest.fixture
def bus():
    """Fresh event bus per test, recording every event."""
    b = SpoolEventBus()
    b.received = []

    async def record(event):
        b.received.append(event)

    b.subscribe(record)
    return b


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """Clear SPOOL_* variables and run from an empty directory (no .env)."""
    for key in list(os.environ):
        if key.startswith("SPOOL_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
