"""
Custom exceptions for the telemetry spool.

Transport problems are never raised to producers; these cover the local
storage side and configuration.
"""


class SpoolError(Exception):
    """Base error for the telemetry spool."""

    pass


class QueueError(SpoolError):
    """Durable queue operation failed."""

    pass


class QueuePersistError(QueueError):
    """A batch could not be written to the durable queue (data loss)."""

    pass


class QueueFullError(QueuePersistError):
    """The durable queue reached its storage cap."""

    pass


class QueueReadError(QueueError):
    """A leased item could not be read back."""

    pass


class StorageConfigError(SpoolError):
    """Configured storage location is unusable."""

    pass


def map_os_error(e: OSError) -> QueuePersistError:
    import errno

    if e.errno in (errno.ENOSPC, errno.EDQUOT):
        return QueueFullError(str(e))
    return QueuePersistError(str(e))
