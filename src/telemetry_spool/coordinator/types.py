from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Protocol, TypeVar

T = TypeVar("T")

StopReason = Literal["empty", "failure", "cancelled", "repeat", "error"]


class ExportOutcome(str, Enum):
    """Result of one transmit attempt."""

    DELIVERED = "delivered"
    TRANSIENT_FAILURE = "transient_failure"
    FATAL = "fatal"  # never produced by the default classifier; handled as transient


@dataclass(frozen=True)
class SendResult:
    outcome: ExportOutcome
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.outcome is ExportOutcome.DELIVERED

    @classmethod
    def ok(cls) -> "SendResult":
        return cls(ExportOutcome.DELIVERED)

    @classmethod
    def transient(cls, error: str) -> "SendResult":
        return cls(ExportOutcome.TRANSIENT_FAILURE, error)


@dataclass(frozen=True)
class DrainResult:
    """Summary of one drain pass over the durable queue.

    Attributes:
        delivered: Items sent and deleted
        failed: Items whose redelivery failed and whose lease was renewed
        dropped: Items removed without delivery (undecodable payload)
        stop_reason: Why the pass ended
    """

    delivered: int = 0
    failed: int = 0
    dropped: int = 0
    stop_reason: StopReason = "empty"

    @property
    def attempted(self) -> int:
        return self.delivered + self.failed + self.dropped


class Transport(Protocol[T]):
    """Sends one export request to the collector.

    Implementations report problems through the returned SendResult rather
    than by raising. The timeout is enforced by the caller as well.
    """

    async def send(self, request: T, *, timeout: float) -> SendResult: ...


class BatchCodec(Protocol[T]):
    def encode(self, request: T) -> bytes: ...

    def decode(self, data: bytes) -> T: ...


class BytesCodec:
    """Identity codec for transports that already speak bytes."""

    def encode(self, request: bytes) -> bytes:
        return bytes(request)

    def decode(self, data: bytes) -> bytes:
        return data
