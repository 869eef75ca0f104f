"""
Persistent Stores for the Metadata Cache

Two implementations of the PersistentStore collaborator:
- JsonFileStore: a single JSON object on disk, rewritten atomically
- MemoryStore: a plain dict, used when persistence is disabled and in tests
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

import aiofiles  # type: ignore[import-untyped]

from depfetch.exceptions import StorageError
from depfetch.log_utils import logger

from .interfaces import Pathish, PersistentStore


class JsonFileStore(PersistentStore):
    """
    Store every key as a member of one JSON object in `path`.

    Writes go to a temporary sibling file that atomically replaces the target,
    so a crash mid-write never leaves a truncated store behind.
    """

    def __init__(self, path: Pathish) -> None:
        self.path = Path(path)

    async def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except OSError as e:
            raise StorageError(
                "Could not read cache store", path=str(self.path), details=str(e)
            ) from e

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(
                "Cache store is not valid JSON", path=str(self.path), details=str(e)
            ) from e
        if not isinstance(data, dict):
            raise StorageError(
                "Cache store must contain a JSON object",
                path=str(self.path),
                details=type(data).__name__,
            )
        return data

    async def _write_all(self, data: Dict[str, Any]) -> None:
        temp_path = self.path.with_suffix(
            f".tmp.{os.getpid()}.{int(time.time() * 1000)}"
        )
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data))
            temp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            raise StorageError(
                "Could not write cache store", path=str(self.path), details=str(e)
            ) from e

    async def load(self, key: str) -> Optional[Any]:
        data = await self._read_all()
        return data.get(key)

    async def save(self, key: str, value: Any) -> None:
        try:
            data = await self._read_all()
        except StorageError as e:
            # Unreadable store: start from an empty object
            logger.warning(f"Replacing unreadable cache store {self.path}: {e}")
            data = {}
        data[key] = value
        await self._write_all(data)

    async def delete(self, key: str) -> None:
        data = await self._read_all()
        if key not in data:
            return
        del data[key]
        if data:
            await self._write_all(data)
            return
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(
                "Could not remove cache store", path=str(self.path), details=str(e)
            ) from e

    def __repr__(self) -> str:
        return f"JsonFileStore({str(self.path)!r})"


class MemoryStore(PersistentStore):
    """In-process store; values are JSON round-tripped to mimic a real backend."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def load(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def save(self, key: str, value: Any) -> None:
        try:
            self._data[key] = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError("Value is not JSON serializable", details=str(e)) from e

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data
