"""Durable queue contract and the file-backed implementation."""

from .base import DurableQueue, LeasedItem
from .file_queue import FileBlobQueue, FileLeasedItem

__all__ = ["DurableQueue", "LeasedItem", "FileBlobQueue", "FileLeasedItem"]
