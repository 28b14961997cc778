"""
Key-value persistence backends for selector set records.
"""
import asyncio
import copy
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from paperscout.extraction.exceptions import PersistenceError
from paperscout.utils.logger import setup_logger


logger = setup_logger()


class KeyValueStore(Protocol):
    """Protocol for the async backing store of selector records."""

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def keys(self, prefix: str = "") -> List[str]:
        ...


class InMemoryKeyValueStore:
    """Dict-backed store. Records are deep-copied in and out."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._data: Dict[str, Dict[str, Any]] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        try:
            # Match the file store: only JSON-serializable records are accepted
            self._data[key] = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise PersistenceError(key, f"record is not serializable: {e}")

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class JsonFileKeyValueStore:
    """
    Stores each record as a JSON file in a directory.

    Blocking file I/O runs in a worker thread so the event loop is not held.
    """

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{_UNSAFE_FILENAME_CHARS.sub('_', key)}.json"

    def _read(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(key, f"failed to read {path}: {e}")

        if not isinstance(payload, dict) or payload.get("key") != key:
            raise PersistenceError(key, f"unexpected payload in {path}")
        return payload.get("value")

    def _write(self, key: str, value: Dict[str, Any]) -> None:
        path = self._path_for(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump({"key": key, "value": value}, f, indent=2)
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(key, f"failed to write {path}: {e}")

    def _delete(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(key, f"failed to delete {path}: {e}")

    def _keys(self, prefix: str) -> List[str]:
        if not self.directory.exists():
            return []

        found = []
        for path in self.directory.glob("*.json"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    key = json.load(f).get("key")
            except (OSError, json.JSONDecodeError, AttributeError) as e:
                logger.warning(f"Skipping unreadable store file {path}: {e}")
                continue
            if isinstance(key, str) and key.startswith(prefix):
                found.append(key)
        return sorted(found)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._delete, key)

    async def keys(self, prefix: str = "") -> List[str]:
        return await asyncio.to_thread(self._keys, prefix)
