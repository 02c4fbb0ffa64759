"""
Key-value persistence for the gig tracker. Values are JSON-serialisable.
"""
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

KEY_CHARS = set("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-_.")


class StorageError(Exception):
    pass


class KeyValueStorage:
    def get_item(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set_item(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):
    """Keeps serialised values in a dict; values round-trip through JSON like on disk."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[Any]:
        raw = self._items.get(key)
        return json.loads(raw) if raw is not None else None

    def set_item(self, key: str, value: Any) -> None:
        self._items[key] = json.dumps(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """One `<key>.json` file per key under `directory`."""

    def __init__(self, directory: str | os.PathLike):
        self.directory = Path(directory)

    @classmethod
    def from_env(cls) -> "JsonFileStorage":
        return cls(os.getenv("GIGBOOK_DATA_DIR", str(Path.home() / ".gigbook")))

    def _path(self, key: str) -> Path:
        if not key or not set(key) <= KEY_CHARS:
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        with path.open(encoding="utf-8") as f:
            return json.load(f)

    def set_item(self, key: str, value: Any) -> None:
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(value, f)
        os.replace(tmp, path)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
