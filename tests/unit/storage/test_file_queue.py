"""
Unit tests for the file-backed durable queue.
"""

import asyncio
import os
import shutil

import pytest

from telemetry_spool.errors import (
    QueueError,
    QueueFullError,
    QueuePersistError,
    QueueReadError,
    StorageConfigError,
)
from telemetry_spool.storage import DurableQueue, FileBlobQueue, LeasedItem


def _names(q: FileBlobQueue) -> list[str]:
    return sorted(os.listdir(q.directory))


@pytest.mark.asyncio
async def test_satisfies_protocols(queue):
    """FileBlobQueue and its items implement the queue contract."""
    assert isinstance(queue, DurableQueue)
    await queue.enqueue(b"x")
    item = await queue.try_dequeue_next(1000)
    assert isinstance(item, LeasedItem)


@pytest.mark.asyncio
async def test_enqueue_read_delete(queue):
    """Stored payload is read back byte-for-byte and deleted on request."""
    handle = await queue.enqueue(b"\x00\x01payload")
    assert await queue.depth() == 1

    item = await queue.try_dequeue_next(1000)
    assert item is not None
    assert item.handle == handle
    assert await item.read() == b"\x00\x01payload"

    assert await item.delete() is True
    assert await queue.depth() == 0
    assert await item.delete() is False  # second delete is a no-op


@pytest.mark.asyncio
async def test_empty_queue_returns_none(queue):
    assert await queue.try_dequeue_next(1000) is None
    assert await queue.depth() == 0


@pytest.mark.asyncio
async def test_oldest_first(queue):
    """Items come out in creation order."""
    for i in range(5):
        await queue.enqueue(f"item-{i}".encode())

    seen = []
    while (item := await queue.try_dequeue_next(60_000)) is not None:
        seen.append(await item.read())
    assert seen == [f"item-{i}".encode() for i in range(5)]


@pytest.mark.asyncio
async def test_leased_item_invisible_until_expiry(queue, clock):
    """A leased item is not handed out again before its lease expires."""
    await queue.enqueue(b"a")
    first = await queue.try_dequeue_next(1000)
    assert first is not None

    assert await queue.try_dequeue_next(1000) is None
    assert await queue.depth() == 1  # still stored while leased

    clock.advance(1.5)
    second = await queue.try_dequeue_next(1000)
    assert second is not None
    assert second.handle == first.handle


@pytest.mark.asyncio
async def test_extend_lease_pushes_expiry(queue, clock):
    """extend_lease moves expiry to now + duration."""
    await queue.enqueue(b"a")
    item = await queue.try_dequeue_next(1000)
    assert await item.extend_lease(5000) is True

    clock.advance(2)
    assert await queue.try_dequeue_next(1000) is None

    clock.advance(3.5)
    assert await queue.try_dequeue_next(1000) is not None

    [name] = _names(queue)
    assert name.endswith(".lock")


@pytest.mark.asyncio
async def test_lost_lease_cannot_be_extended_or_deleted(queue, clock):
    """After another holder takes an expired item, the old holder is locked out."""
    await queue.enqueue(b"a")
    stale = await queue.try_dequeue_next(1000)
    clock.advance(2)
    fresh = await queue.try_dequeue_next(1000)
    assert fresh is not None

    assert await stale.extend_lease(1000) is False
    assert await stale.delete() is False
    assert await queue.depth() == 1

    assert await fresh.delete() is True
    assert await queue.depth() == 0


@pytest.mark.asyncio
async def test_concurrent_dequeue_single_winner(queue):
    """Racing holders: exactly one leases the only item."""
    await queue.enqueue(b"only")

    results = await asyncio.gather(*[queue.try_dequeue_next(10_000) for _ in range(8)])
    winners = [r for r in results if r is not None]
    assert len(winners) == 1


@pytest.mark.asyncio
async def test_concurrent_dequeue_distinct_items(queue):
    """Concurrent holders never receive the same item."""
    for i in range(20):
        await queue.enqueue(str(i).encode())

    results = await asyncio.gather(*[queue.try_dequeue_next(10_000) for _ in range(20)])
    handles = [r.handle for r in results if r is not None]
    assert len(handles) == len(set(handles))


@pytest.mark.asyncio
async def test_read_missing_blob_raises(queue):
    await queue.enqueue(b"a")
    item = await queue.try_dequeue_next(1000)
    os.unlink(item.path)

    with pytest.raises(QueueReadError):
        await item.read()


@pytest.mark.asyncio
async def test_max_bytes_raises_queue_full(tmp_path):
    q = FileBlobQueue(tmp_path / "spool", max_bytes=10)
    await q.enqueue(b"12345")

    with pytest.raises(QueueFullError):
        await q.enqueue(b"123456")
    assert await q.depth() == 1
    assert await q.size_bytes() == 5


@pytest.mark.asyncio
async def test_no_temp_files_left_behind(queue):
    await queue.enqueue(b"a" * 1024)
    assert not [n for n in _names(queue) if n.endswith(".tmp")]


@pytest.mark.asyncio
async def test_prune_removes_items_past_retention(tmp_path, clock):
    q = FileBlobQueue(tmp_path / "spool", retention_ms=60_000, clock=clock)
    await q.enqueue(b"old")
    await q.enqueue(b"leased")
    await q.try_dequeue_next(1000)

    assert await q.prune() == 0

    clock.advance(120)
    assert await q.prune() == 2
    assert await q.depth() == 0


@pytest.mark.asyncio
async def test_prune_removes_abandoned_temp_files(queue):
    tmp = queue.directory / "00000000000000000001-dead.tmp"
    tmp.write_bytes(b"partial")
    os.utime(tmp, (0, 0))

    assert await queue.prune() == 0
    assert not tmp.exists()


def test_missing_directory_without_mkdirs(tmp_path):
    with pytest.raises(StorageConfigError):
        FileBlobQueue(tmp_path / "nope", mkdirs=False)


def test_path_is_a_file(tmp_path):
    f = tmp_path / "file"
    f.write_text("x")
    with pytest.raises(StorageConfigError):
        FileBlobQueue(f)


def test_creates_directory(tmp_path):
    q = FileBlobQueue(tmp_path / "a" / "b")
    assert q.directory.is_dir()


@pytest.mark.asyncio
async def test_removed_directory_raises_queue_errors(tmp_path):
    """A directory deleted at runtime surfaces as queue errors, not OSError."""
    q = FileBlobQueue(tmp_path / "spool")
    capped = FileBlobQueue(tmp_path / "capped", max_bytes=1 << 20)
    shutil.rmtree(q.directory)
    shutil.rmtree(capped.directory)

    with pytest.raises(QueueError):
        await q.try_dequeue_next(1000)
    with pytest.raises(QueueError):
        await q.depth()
    with pytest.raises(QueuePersistError):
        await q.enqueue(b"x")
    with pytest.raises(QueuePersistError):
        await capped.enqueue(b"x")


@pytest.mark.asyncio
async def test_storage_refusing_changes_reports_false(queue, monkeypatch):
    """Lease extension and delete report False when the filesystem refuses."""
    await queue.enqueue(b"x")
    item = await queue.try_dequeue_next(1000)

    def denied(*args, **kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(os, "rename", denied)
    monkeypatch.setattr(os, "unlink", denied)
    assert await item.extend_lease(1000) is False
    assert await item.delete() is False
    monkeypatch.undo()

    assert await queue.depth() == 1
