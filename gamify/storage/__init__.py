"""Storage adapters for persisting queued events and identity.

The adapter is chosen once, when the client is built: a configured durable
store is probed with a trivial write/delete and replaced by the in-memory
adapter if the probe fails. Call sites never branch on capability.
"""

import logging
from pathlib import Path

from gamify.storage.base import DurableStorageAdapter, StorageAdapter
from gamify.storage.file import FileStorageAdapter
from gamify.storage.memory import MemoryStorageAdapter

logger = logging.getLogger("gamify.storage")


def select_storage(prefix: str, candidate: DurableStorageAdapter | None) -> StorageAdapter:
    """Return candidate if it passes its probe, else an in-memory adapter."""
    if candidate is not None and candidate.probe():
        return candidate
    if candidate is not None:
        logger.warning(
            f"{type(candidate).__name__} failed its probe, falling back to in-memory storage",
            extra={"adapter": type(candidate).__name__},
        )
    return MemoryStorageAdapter(prefix)


def create_storage(
    prefix: str,
    path: str | Path | None = None,
    redis_url: str | None = None,
) -> StorageAdapter:
    """Create the most durable storage adapter available.

    Args:
        prefix: Namespace for every key the adapter writes.
        path: Directory for file storage.
        redis_url: Redis URL; takes precedence over path.
    """
    candidate: DurableStorageAdapter | None = None
    if redis_url:
        try:
            from gamify.storage.redis import RedisStorageAdapter

            candidate = RedisStorageAdapter(prefix, url=redis_url)
        except (ImportError, ValueError) as e:
            logger.warning(f"Redis storage unavailable: {e}")
    if candidate is None and path is not None:
        candidate = FileStorageAdapter(prefix, path)
    return select_storage(prefix, candidate)


__all__ = [
    "DurableStorageAdapter",
    "FileStorageAdapter",
    "MemoryStorageAdapter",
    "StorageAdapter",
    "create_storage",
    "select_storage",
]
