"""
File-backed durable queue.

Each item is one blob file in a flat directory. The file name encodes the
item's state, and every state change is a single ``os.rename``, which is
atomic on the same filesystem. Two holders racing for the same item therefore
cannot both win: the loser's rename fails with ``FileNotFoundError``.

    <stamp>-<uuid>.blob               unleased
    <stamp>-<uuid>@<expiry_ms>.lock   leased until expiry_ms (epoch millis)
    <stamp>-<uuid>.tmp                write in progress, never visible

``stamp`` is a zero-padded nanosecond timestamp, so lexical order of names is
creation order and ``try_dequeue_next`` yields the oldest leasable item first.
"""

from __future__ import annotations

import asyncio
import os
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from ..errors import (
    QueueError,
    QueueFullError,
    QueuePersistError,
    QueueReadError,
    StorageConfigError,
    map_os_error,
)

BLOB_SUFFIX = ".blob"
LOCK_SUFFIX = ".lock"
TMP_SUFFIX = ".tmp"
_TMP_GRACE_S = 300.0


def _split_lock(name: str) -> tuple[str, int] | None:
    """Return (stem, expiry_ms) for a lock file name, None if malformed."""
    stem, sep, rest = name[: -len(LOCK_SUFFIX)].rpartition("@")
    if not sep:
        return None
    try:
        return stem, int(rest)
    except ValueError:
        return None


def _created_at(stem: str) -> float | None:
    try:
        return int(stem.split("-", 1)[0]) / 1e9
    except ValueError:
        return None


class FileLeasedItem:
    """Lease handle on a single blob. Not meant to be shared between tasks."""

    def __init__(self, queue: "FileBlobQueue", stem: str, path: Path):
        self._queue = queue
        self._stem = stem
        self._path = path

    @property
    def handle(self) -> str:
        return self._stem

    @property
    def path(self) -> Path:
        return self._path

    async def read(self) -> bytes:
        try:
            return await asyncio.to_thread(self._path.read_bytes)
        except OSError as exc:
            raise QueueReadError(f"{self._stem}: {exc}") from exc

    async def extend_lease(self, duration_ms: int) -> bool:
        target = self._queue._lock_path(self._stem, duration_ms)
        try:
            await asyncio.to_thread(os.rename, self._path, target)
        except FileNotFoundError:
            # Lease expired and another holder took the item, or it was deleted.
            logger.debug(f"Lease lost on {self._stem}, cannot extend")
            return False
        except OSError as exc:
            logger.warning(f"Cannot extend lease on {self._stem}: {exc}")
            return False
        self._path = target
        return True

    async def delete(self) -> bool:
        try:
            await asyncio.to_thread(os.unlink, self._path)
        except FileNotFoundError:
            logger.debug(f"Blob {self._stem} already gone on delete")
            return False
        except OSError as exc:
            logger.warning(f"Cannot delete blob {self._stem}: {exc}")
            return False
        return True

    def __repr__(self) -> str:
        return f"FileLeasedItem({self._stem!r})"


class FileBlobQueue:
    """Crash-durable FIFO of opaque payloads stored as files in one directory.

    Safe for concurrent producers and drainers in the same process and across
    processes sharing the directory.

    Args:
        directory: Storage location. Created if missing when ``mkdirs`` is set.
        max_bytes: Total stored bytes above which ``enqueue`` raises
            QueueFullError. None disables the cap.
        retention_ms: Items older than this are removed by ``prune``.
        mkdirs: Create the directory if it does not exist.
        clock: Wall-clock source in seconds, used for lease expiry.

    Raises:
        StorageConfigError: the directory is missing, not a directory, or not
            writable.
    """

    def __init__(
        self,
        directory: str | Path,
        *,
        max_bytes: int | None = None,
        retention_ms: int | None = None,
        mkdirs: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(directory).expanduser()
        self.max_bytes = max_bytes
        self.retention_ms = retention_ms
        self._clock = clock
        self._stamp_lock = threading.Lock()
        self._last_stamp = 0

        if mkdirs:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StorageConfigError(
                    f"Cannot create storage directory {self.directory}: {exc}"
                ) from exc
        if not self.directory.is_dir():
            raise StorageConfigError(f"Storage path is not a directory: {self.directory}")
        if not os.access(self.directory, os.W_OK | os.X_OK):
            raise StorageConfigError(f"Storage directory is not writable: {self.directory}")

    # ---------- naming ----------

    def _next_stamp(self) -> int:
        # Strictly increasing within this process so names keep creation order
        with self._stamp_lock:
            self._last_stamp = max(time.time_ns(), self._last_stamp + 1)
            return self._last_stamp

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _lock_path(self, stem: str, lease_ms: int) -> Path:
        return self.directory / f"{stem}@{self._now_ms() + int(lease_ms)}{LOCK_SUFFIX}"

    # ---------- DurableQueue ----------

    async def enqueue(self, payload: bytes) -> str:
        return await asyncio.to_thread(self._enqueue_sync, bytes(payload))

    async def try_dequeue_next(self, lease_ms: int) -> Optional[FileLeasedItem]:
        return await asyncio.to_thread(self._dequeue_sync, lease_ms)

    async def depth(self) -> int:
        return await asyncio.to_thread(self._depth_sync)

    async def size_bytes(self) -> int:
        return await asyncio.to_thread(self._size_sync)

    async def prune(self) -> int:
        """Remove items past retention and abandoned temp files.

        Returns:
            Number of items removed (temp files excluded).
        """
        return await asyncio.to_thread(self._prune_sync)

    # ---------- sync implementation (run in worker threads) ----------

    def _enqueue_sync(self, payload: bytes) -> str:
        if self.max_bytes is not None:
            try:
                used = self._size_sync()
            except QueueError as exc:
                raise QueuePersistError(str(exc)) from exc
            if used + len(payload) > self.max_bytes:
                raise QueueFullError(
                    f"Storage cap reached: {used} + {len(payload)} > {self.max_bytes} bytes"
                )

        stem = f"{self._next_stamp():020d}-{uuid.uuid4().hex}"
        tmp = self.directory / f"{stem}{TMP_SUFFIX}"
        try:
            with open(tmp, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.directory / f"{stem}{BLOB_SUFFIX}")
        except OSError as exc:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise map_os_error(exc) from exc

        logger.debug(f"Stored blob {stem} ({len(payload)} bytes)")
        return stem

    def _dequeue_sync(self, lease_ms: int) -> Optional[FileLeasedItem]:
        now_ms = self._now_ms()
        for name in sorted(self._listdir()):
            if name.endswith(BLOB_SUFFIX):
                stem = name[: -len(BLOB_SUFFIX)]
            elif name.endswith(LOCK_SUFFIX):
                parsed = _split_lock(name)
                if parsed is None or parsed[1] > now_ms:
                    continue
                stem = parsed[0]
            else:
                continue

            target = self._lock_path(stem, lease_ms)
            try:
                os.rename(self.directory / name, target)
            except FileNotFoundError:
                continue  # someone else leased or deleted it first
            except OSError as exc:
                raise QueueError(f"Cannot lease {stem}: {exc}") from exc
            return FileLeasedItem(self, stem, target)
        return None

    def _listdir(self) -> list[str]:
        try:
            return os.listdir(self.directory)
        except OSError as exc:
            raise QueueError(f"Cannot list storage directory {self.directory}: {exc}") from exc

    def _entries(self) -> list[os.DirEntry]:
        try:
            with os.scandir(self.directory) as it:
                return list(it)
        except OSError as exc:
            raise QueueError(f"Cannot scan storage directory {self.directory}: {exc}") from exc

    def _items(self) -> list[os.DirEntry]:
        return [e for e in self._entries() if e.name.endswith((BLOB_SUFFIX, LOCK_SUFFIX))]

    def _depth_sync(self) -> int:
        return len(self._items())

    def _size_sync(self) -> int:
        total = 0
        for entry in self._items():
            try:
                total += entry.stat().st_size
            except FileNotFoundError:
                pass
        return total

    def _prune_sync(self) -> int:
        now = self._clock()
        removed = 0
        for entry in self._entries():
            try:
                if entry.name.endswith(TMP_SUFFIX):
                    if now - entry.stat().st_mtime > _TMP_GRACE_S:
                        os.unlink(entry.path)
                        logger.debug(f"Removed abandoned temp file {entry.name}")
                    continue
                if self.retention_ms is None:
                    continue
                if entry.name.endswith(BLOB_SUFFIX):
                    stem = entry.name[: -len(BLOB_SUFFIX)]
                elif entry.name.endswith(LOCK_SUFFIX):
                    parsed = _split_lock(entry.name)
                    if parsed is None:
                        continue
                    stem = parsed[0]
                else:
                    continue
                created = _created_at(stem)
                if created is not None and (now - created) * 1000 > self.retention_ms:
                    os.unlink(entry.path)
                    removed += 1
                    logger.warning(f"Blob {stem} exceeded retention, removed")
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning(f"Cannot prune {entry.name}: {exc}")
        return removed

    def __repr__(self) -> str:
        return f"FileBlobQueue({str(self.directory)!r})"
