"""
Key-value storage for small client settings.

The client only needs a narrow get/set capability (the stored API key and
the last selected model), injected where it is used rather than held in
module-level state.

- KeyValueStore: Protocol every backend satisfies
- InMemoryKeyValueStore: process-local dict, for tests and ephemeral runs
- JsonFileKeyValueStore: one JSON object on disk, read and written with aiofiles
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Protocol

import aiofiles
import structlog

from deeperseeker.logging_utils import log_operation

logger = structlog.get_logger(__name__)

API_KEY = "apikey"
SELECTED_MODEL_KEY = "selected_model"


class KeyValueStore(Protocol):
    """
    Interface for string key-value persistence.
    """

    async def get(self, key: str) -> str | None:
        """
        Return the stored value, or None when the key is absent.
        """
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> None:
        """
        Remove the key. Deleting a missing key is not an error.
        """
        ...


class InMemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Stores all keys in a single JSON object file.

    The file is loaded on first access. Every write replaces the whole file
    through a temporary sibling and os.replace, so readers never see a
    half-written object.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = asyncio.Lock()
        self._data: dict[str, str] = {}
        self._loaded = False

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return

        async with self._lock:
            if self._loaded:
                return
            await self._load_async()
            self._loaded = True

    @log_operation("storage_load")
    async def _load_async(self) -> None:
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                raw = await f.read()
        except FileNotFoundError:
            # Nothing stored yet
            return

        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            logger.warning("Ignoring unreadable storage file", path=self.path, error=str(e))
            return

        if not isinstance(data, dict):
            logger.warning("Ignoring storage file without a JSON object", path=self.path)
            return
        self._data = {str(k): v for k, v in data.items() if isinstance(v, str)}

    @log_operation("storage_write")
    async def _write_async(self, data: dict[str, str]) -> None:
        """Persist a whole mapping. Must be called with the lock held."""
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        tmp_path = f"{self.path}.tmp"
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, ensure_ascii=False, indent=2))
                await f.flush()
            os.replace(tmp_path, self.path)
        finally:
            if os.path.isfile(tmp_path):
                os.remove(tmp_path)

    async def get(self, key: str) -> str | None:
        await self._ensure_loaded()
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._ensure_loaded()
        async with self._lock:
            updated = {**self._data, key: value}
            await self._write_async(updated)
            self._data = updated

    async def delete(self, key: str) -> None:
        await self._ensure_loaded()
        async with self._lock:
            if key not in self._data:
                return
            updated = {k: v for k, v in self._data.items() if k != key}
            await self._write_async(updated)
            self._data = updated
