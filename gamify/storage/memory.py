"""In-memory storage adapter for Gamify."""

import json
import logging
from typing import Any

logger = logging.getLogger("gamify.storage")


class MemoryStorageAdapter:
    """Volatile key/value storage backed by a dict.

    Used when no durable store is configured or the durable store fails its
    probe. Values are kept JSON-encoded so reads return fresh copies and
    unserializable writes fail the same way they would on a durable store.
    Everything is lost when the process exits.

    Args:
        prefix: Namespace prepended to every key.
    """

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self._store: dict[str, str] = {}

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Any | None:
        item = self._store.get(self._key(key))
        if item is None:
            return None
        try:
            return json.loads(item)
        except ValueError:
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            self._store[self._key(key)] = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.debug(f"Dropped write to {key}: {e}", extra={"key": key})

    def remove(self, key: str) -> None:
        self._store.pop(self._key(key), None)

    def clear(self) -> None:
        for key in [k for k in self._store if k.startswith(self.prefix)]:
            del self._store[key]

    def keys(self) -> list[str]:
        """Unprefixed keys currently stored."""
        return [k[len(self.prefix):] for k in self._store if k.startswith(self.prefix)]

    def __len__(self) -> int:
        return len(self.keys())
