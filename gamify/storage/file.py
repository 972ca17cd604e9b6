"""Durable file-backed storage adapter for Gamify."""

import json
import logging
import os
from pathlib import Path
from typing import Any
from uuid import uuid4

logger = logging.getLogger("gamify.storage")

_PROBE_KEY = "__probe__"


class FileStorageAdapter:
    """Key/value storage with one JSON file per key.

    Each key is written to ``{directory}/{prefix}{key}.json``. Writes go to a
    temporary file first and are moved into place with os.replace, so a crash
    mid-write leaves the previous value intact.

    Args:
        prefix: Namespace prepended to every file name.
        directory: Directory holding the files. Created on first write.
    """

    def __init__(self, prefix: str, directory: str | Path) -> None:
        self.prefix = prefix
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        return self.directory / f"{self.prefix}{key}.json"

    def _write(self, key: str, value: Any) -> None:
        data = json.dumps(value)
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_name(f".{path.name}.{uuid4().hex[:8]}.tmp")
        try:
            tmp.write_text(data, encoding="utf-8")
            os.replace(tmp, path)
        finally:
            tmp.unlink(missing_ok=True)

    def probe(self) -> bool:
        try:
            self._write(_PROBE_KEY, "probe")
            self._path(_PROBE_KEY).unlink()
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.debug(f"File storage unavailable at {self.directory}: {e}")
            return False

    def get(self, key: str) -> Any | None:
        try:
            return json.loads(self._path(key).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug(f"Unreadable value for {key}: {e}", extra={"key": key})
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            self._write(key, value)
        except (OSError, TypeError, ValueError) as e:
            logger.debug(f"Dropped write to {key}: {e}", extra={"key": key})

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Failed to remove {key}: {e}", extra={"key": key})

    def clear(self) -> None:
        try:
            paths = [
                p
                for p in self.directory.iterdir()
                if p.name.startswith(self.prefix) and p.suffix == ".json"
            ]
        except OSError:
            return
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.debug(f"Failed to remove {path}: {e}")
