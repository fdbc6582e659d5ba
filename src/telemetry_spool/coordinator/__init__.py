"""Export Coordinator

Durable spillover-and-retry pipeline for telemetry export:
- ExportCoordinator (direct send, spill on failure, inline drain)
- DrainScheduler (periodic single-flight drain)
- Shared lease/send/delete drain protocol
- Result types instead of exceptions for transport failures
- Spool events (spilled, data loss, redelivery)
- Environment-based settings
"""

from .types import (
    T,
    ExportOutcome,
    SendResult,
    DrainResult,
    Transport,
    BatchCodec,
    BytesCodec,
)
from .policy import DrainPolicy, default_outcome_classifier
from .drain import drain_queue, send_with_deadline
from .events import SpoolEvent, SpoolEventBus, SpoolEventKind, spool_events
from .export_coordinator import ExportCoordinator
from .scheduler import DrainScheduler, SchedulerHealth
from .settings import SpoolRuntimeSettings, get_settings

__all__ = [
    # types
    "T",
    "ExportOutcome",
    "SendResult",
    "DrainResult",
    "Transport",
    "BatchCodec",
    "BytesCodec",
    "SchedulerHealth",
    # policies
    "DrainPolicy",
    "default_outcome_classifier",
    # protocol
    "drain_queue",
    "send_with_deadline",
    # events
    "SpoolEvent",
    "SpoolEventBus",
    "SpoolEventKind",
    "spool_events",
    # runtime
    "ExportCoordinator",
    "DrainScheduler",
    "SpoolRuntimeSettings",
    "get_settings",
]
