"""Durable key-value storage port and its adapters."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, Protocol

from .errors import StorageWriteFailed

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class KeyValueStorage(Protocol):
    """The only surface the cache uses to reach durable storage."""

    def read(self, key: str) -> str | None:
        ...

    def write(self, key: str, value: str) -> None:
        ...

    def clear(self, key: str) -> None:
        ...


class InMemoryStorage:
    """Dictionary-backed storage with an optional capacity in characters.

    The quota mimics browser storage limits: a write that would exceed it
    raises :class:`StorageWriteFailed` and leaves the old value in place.
    """

    def __init__(self, quota: int | None = None) -> None:
        self._values: Dict[str, str] = {}
        self._quota = quota

    def read(self, key: str) -> str | None:
        return self._values.get(key)

    def write(self, key: str, value: str) -> None:
        if self._quota is not None:
            used = sum(len(stored) for name, stored in self._values.items() if name != key)
            if used + len(value) > self._quota:
                raise StorageWriteFailed(key, "Storage quota exceeded")
        self._values[key] = value

    def clear(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._values)


class JsonFileStorage:
    """Store each key as a JSON document inside *directory*."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as exc:
            raise StorageWriteFailed(key, str(exc)) from exc

    def clear(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
