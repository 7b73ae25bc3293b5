"""Core infrastructure: configuration, logging, content storage and queues."""

from flowstage.core.content_store import FilesystemContentStore, MemoryContentStore, create_content_store
from flowstage.core.repository import FlowRepository

__all__ = [
    "FilesystemContentStore",
    "FlowRepository",
    "MemoryContentStore",
    "create_content_store",
]
