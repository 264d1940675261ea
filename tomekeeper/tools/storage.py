"""
Storage transports — key/value stores holding one JSON value per key.

Reads are forgiving: a missing or corrupt value comes back as the caller's
default. Writes are strict: anything that stops a value from being durably
stored raises StorageError, which the persistence layer catches and reports.
"""

import os
import re
import json
import copy
import logging
import tempfile
from typing import Any, Dict, Protocol

logger = logging.getLogger("Storage")

_VALID_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageError(Exception):
    """A value could not be written to (or removed from) the store."""
    pass


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


def _serialize(key: str, value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Value for '{key}' is not JSON-serializable: {e}") from e


class MemoryStore:
    """In-process store. Values go through a JSON round trip on write so
    unserializable data fails the same way it would on disk."""

    def __init__(self, initial: Dict[str, Any] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return copy.deepcopy(default)
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = _serialize(key, value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return sorted(self._data)


class JsonFileStore:
    """One `<key>.json` file per key under `directory`. Writes are atomic."""

    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, key: str) -> str:
        if not _VALID_KEY.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str, default: Any = None) -> Any:
        path = self._path(key)
        if not os.path.exists(path):
            return copy.deepcopy(default)
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {path}, using default: {e}")
            return copy.deepcopy(default)

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        payload = _serialize(key, value)
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.debug(f"Wrote {key} to {path}")

    def remove(self, key: str) -> None:
        path = self._path(key)
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            raise StorageError(f"Failed to remove {path}: {e}") from e

    def keys(self):
        if not os.path.isdir(self.directory):
            return []
        return sorted(name[:-5] for name in os.listdir(self.directory) if name.endswith(".json"))
