"""Key/value persistence for vault state.

Values are opaque strings. The vault only needs get/set/delete, an atomic
batch write and key enumeration, so any local store (browser storage, keychain, file) can back it.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol, Union, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal string key/value store interface."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def set_many(self, items: Dict[str, str]) -> None:
        """Write several values at once: either all of them land or none do."""
        ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


class MemoryStore:
    """In-process store. Contents are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def set_many(self, items: Dict[str, str]) -> None:
        with self._lock:
            self._data.update(items)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._data))

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class JsonFileStore:
    """Store persisted as a single JSON object on disk.

    Writes go to a temporary file that replaces the target, so a crash
    never leaves a half-written store behind.
    """

    def __init__(self, path: Union[str, Path]):
        """Initialize file store.

        Args:
            path: JSON file location (created on first write)
        """
        self.path = Path(path)
        self._lock = threading.Lock()
        self._data = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Store file {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Store file {self.path} must contain a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".voxgate-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def _commit(self, data: Dict[str, str]) -> None:
        # Memory only changes once the file write succeeded
        self._flush(data)
        self._data = data

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, items: Dict[str, str]) -> None:
        with self._lock:
            self._commit({**self._data, **items})

    def delete(self, key: str) -> None:
        with self._lock:
            if key in self._data:
                self._commit({k: v for k, v in self._data.items() if k != key})

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._data))


def open_store(path: Optional[str] = None) -> KeyValueStore:
    """Open a file store at path, or an in-memory store when path is None."""
    if path is None:
        return MemoryStore()
    logger.info(f"Using file store at {path}")
    return JsonFileStore(path)
