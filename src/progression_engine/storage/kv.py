"""Injectable key-value stores (in-memory for tests, JSON files on disk)."""

import fcntl
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

from progression_engine.config import Settings


class KeyValueStore(Protocol):
    """String key-value store with an atomic compare-and-set."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...

    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        """Write ``value`` only if the stored value equals ``expected``.

        ``expected=None`` means the key must not exist yet.
        """
        ...


class InMemoryStore:
    """Process-local store backed by a dict."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            return True

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class JsonFileStore:
    """One JSON file per key (fcntl.flock + atomic write).

    Args:
        directory: Directory holding the files; created if missing.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def _lock_path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json.lock"

    def _read(self, path: Path) -> str | None:
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, path: Path, value: str) -> None:
        with tempfile.NamedTemporaryFile(
            "w", dir=self.directory, delete=False, suffix=".json", encoding="utf-8"
        ) as tmp:
            tmp.write(value)
        os.replace(tmp.name, path)

    def get(self, key: str) -> str | None:
        with open(self._lock_path(key), "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_SH)
            try:
                return self._read(self._path(key))
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def set(self, key: str, value: str) -> None:
        with open(self._lock_path(key), "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                self._write(self._path(key), value)
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def delete(self, key: str) -> None:
        with open(self._lock_path(key), "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                self._path(key).unlink(missing_ok=True)
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)

    def compare_and_set(self, key: str, expected: str | None, value: str) -> bool:
        with open(self._lock_path(key), "a") as lock_file:
            fcntl.flock(lock_file, fcntl.LOCK_EX)
            try:
                path = self._path(key)
                if self._read(path) != expected:
                    return False
                self._write(path, value)
                return True
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)


def build_store(settings: Settings) -> KeyValueStore:
    """Create the store selected by ``settings.storage_backend``."""
    if settings.storage_backend == "json":
        return JsonFileStore(settings.data_dir)
    return InMemoryStore()
