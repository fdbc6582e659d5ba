"""Test doubles shared by the unit tests."""

from __future__ import annotations

import asyncio
import time
from typing import Optional

from prometheus_client import REGISTRY

from telemetry_spool.coordinator import SendResult
from telemetry_spool.errors import QueuePersistError


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float | None = None):
        self.now = time.time() if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    @property
    def now_ms(self) -> int:
        return int(self.now * 1000)


def metric(name: str, labels: dict | None = None) -> float:
    """Current value of a Prometheus sample (0.0 if never recorded)."""
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class ScriptedTransport:
    """Transport that plays back a script of results, then a default.

    Script steps: True (delivered), False (transient failure) or an exception
    instance to raise.
    """

    def __init__(self, *script, default: bool = True):
        self._script = list(script)
        self.default = default
        self.sent: list[bytes] = []

    async def send(self, request: bytes, *, timeout: float) -> SendResult:
        self.sent.append(request)
        step = self._script.pop(0) if self._script else self.default
        if isinstance(step, BaseException):
            raise step
        return SendResult.ok() if step else SendResult.transient("collector unavailable")


class RejectingTransport:
    """Fails every payload listed in ``reject``; delivers everything else."""

    def __init__(self, reject: set[bytes], on_send=None):
        self.reject = reject
        self.sent: list[bytes] = []
        self._on_send = on_send

    async def send(self, request: bytes, *, timeout: float) -> SendResult:
        self.sent.append(request)
        if self._on_send is not None:
            self._on_send(request)
        if request in self.reject:
            return SendResult.transient("rejected")
        return SendResult.ok()


class BlockingTransport:
    """Blocks inside send until released (or forever)."""

    def __init__(self, result: bool = True):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.result = result
        self.sent: list[bytes] = []
        self.cancelled = 0

    async def send(self, request: bytes, *, timeout: float) -> SendResult:
        self.sent.append(request)
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return SendResult.ok() if self.result else SendResult.transient("failed")


class FailingQueue:
    """Durable queue whose enqueue always fails; records drain attempts."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error or QueuePersistError("No space left on device")
        self.dequeue_calls = 0

    async def enqueue(self, payload: bytes) -> str:
        raise self.error

    async def try_dequeue_next(self, lease_ms: int):
        self.dequeue_calls += 1
        return None

    async def depth(self) -> int:
        return 0
