"""Storage protocol for Gamify persistence.

Every adapter namespaces its keys with a prefix and never raises: a
telemetry write that fails is dropped, not surfaced to the host
application.
"""

from typing import Any, Protocol


class StorageAdapter(Protocol):
    """Protocol defining the interface for key/value storage adapters.

    Adapters are responsible for:
    - Namespacing keys with their prefix
    - JSON-encoding values on write and decoding on read
    - Swallowing storage failures (quota, disabled store, bad values)

    EventQueue is the only caller allowed to touch the queue key.
    """

    prefix: str

    def get(self, key: str) -> Any | None:
        """Return the decoded value for key, or None if absent or unreadable."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""
        ...

    def remove(self, key: str) -> None:
        """Delete key if present."""
        ...

    def clear(self) -> None:
        """Delete every key under this adapter's prefix, and nothing else."""
        ...


class DurableStorageAdapter(StorageAdapter, Protocol):
    """A storage adapter that survives process restarts."""

    def probe(self) -> bool:
        """Perform a trivial write/delete and report whether it worked.

        Unlike the other operations this reports failure instead of
        swallowing it, so callers can pick a fallback once up front.
        """
        ...
