"""Redis storage adapter for Gamify.

Durable storage that several processes can share. Concurrent writers to the
same queue key are last-writer-wins.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import urlparse, urlunparse

try:
    import redis
except ImportError as e:
    raise ImportError(
        "Redis storage requires the 'redis' package. "
        "Install it with: pip install gamify-sdk[redis]"
    ) from e

logger = logging.getLogger("gamify.storage")

_PROBE_KEY = "__probe__"


def _sanitize_url(url: str) -> str:
    """Mask password in Redis URL for logging."""
    try:
        parsed = urlparse(url)
        if parsed.password:
            netloc = f"{parsed.username or ''}:****@{parsed.hostname}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(
                (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
            )
        return f"{parsed.hostname}:{parsed.port or 6379}"
    except ValueError:
        return "<url>"


class RedisStorageAdapter:
    """Key/value storage on a Redis server using plain GET/SET/DEL.

    Uses the synchronous client: storage calls sit inside queue
    read-modify-write sequences that must not yield to the event loop.

    Args:
        prefix: Namespace prepended to every key.
        url: Redis connection URL (default: redis://localhost:6379).
        client: Pre-built client; overrides url.
        socket_timeout: Seconds before a Redis call is abandoned.
    """

    def __init__(
        self,
        prefix: str,
        url: str = "redis://localhost:6379",
        client: redis.Redis | None = None,
        socket_timeout: float = 1.0,
    ) -> None:
        self.prefix = prefix
        self._url_safe = _sanitize_url(url)
        self._client = client or redis.Redis.from_url(
            url, socket_timeout=socket_timeout, socket_connect_timeout=socket_timeout
        )

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def probe(self) -> bool:
        try:
            self._client.set(self._key(_PROBE_KEY), "probe")
            self._client.delete(self._key(_PROBE_KEY))
            logger.debug(f"Using Redis storage at {self._url_safe}")
            return True
        except redis.RedisError as e:
            logger.debug(f"Redis storage unavailable at {self._url_safe}: {e}")
            return False

    def get(self, key: str) -> Any | None:
        try:
            item = self._client.get(self._key(key))
        except redis.RedisError as e:
            logger.debug(f"Redis GET {key} failed: {e}", extra={"key": key})
            return None
        if item is None:
            return None
        try:
            if isinstance(item, bytes):
                item = item.decode("utf-8")
            return json.loads(item)
        except ValueError as e:
            logger.debug(f"Unreadable value under {key}: {e}", extra={"key": key})
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            self._client.set(self._key(key), json.dumps(value))
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.debug(f"Dropped write to {key}: {e}", extra={"key": key})

    def remove(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as e:
            logger.debug(f"Redis DEL {key} failed: {e}", extra={"key": key})

    def clear(self) -> None:
        pattern = "".join(f"\\{c}" if c in "*?[]\\" else c for c in self.prefix) + "*"
        try:
            keys = list(self._client.scan_iter(match=pattern))
            if keys:
                self._client.delete(*keys)
        except redis.RedisError as e:
            logger.debug(f"Redis clear failed: {e}")

    def close(self) -> None:
        """Release the connection pool."""
        try:
            self._client.close()
        except redis.RedisError as e:
            logger.debug(f"Redis close failed: {e}")
