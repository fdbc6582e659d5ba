"""
Telemetry spool: deliver telemetry export batches to a collector without
losing them to transient outages.
"""

from .coordinator import (
    DrainPolicy,
    DrainScheduler,
    ExportCoordinator,
    ExportOutcome,
    SendResult,
    SpoolRuntimeSettings,
)
from .errors import (
    QueueError,
    QueueFullError,
    QueuePersistError,
    QueueReadError,
    SpoolError,
    StorageConfigError,
)
from .exporter import SpoolExporter
from .storage import DurableQueue, FileBlobQueue, LeasedItem
from .transport import HttpTransport

__version__ = "0.1.0"

__all__ = [
    "DrainPolicy",
    "DrainScheduler",
    "ExportCoordinator",
    "ExportOutcome",
    "SendResult",
    "SpoolRuntimeSettings",
    "QueueError",
    "QueueFullError",
    "QueuePersistError",
    "QueueReadError",
    "SpoolError",
    "StorageConfigError",
    "SpoolExporter",
    "DurableQueue",
    "FileBlobQueue",
    "LeasedItem",
    "HttpTransport",
]
