"""
JSON file storage: one file per key, ``:`` separated key segments become
sub-directories. Segments are percent-encoded so free-text labels (slashes,
accents) stay valid path components.
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import quote, unquote

from harvester.errors import StorageError
from harvester.storage.base import BaseStorage

logger = logging.getLogger(__name__)

SUFFIX = ".json"
EMPTY_SEGMENT = "%00"


class JsonFileStorage(BaseStorage):
    def __init__(self, storage_path: str):
        self.root = Path(storage_path)

    async def initialize(self) -> None:
        try:
            await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to initialize storage directory {self.root}: {e}") from e
        logger.info(f"JSON storage ready at {self.root}")

    @staticmethod
    def _encode(part: str) -> str:
        if not part:
            return EMPTY_SEGMENT
        encoded = quote(part, safe="")
        if set(encoded) == {"."}:
            encoded = encoded.replace(".", "%2E")
        return encoded

    @staticmethod
    def _decode(part: str) -> str:
        return "" if part == EMPTY_SEGMENT else unquote(part)

    def _path_for(self, key: str) -> Path:
        segments = [self._encode(part) for part in key.split(":")]
        segments[-1] += SUFFIX
        return self.root.joinpath(*segments)

    def _key_for(self, path: Path) -> str:
        relative = path.relative_to(self.root).as_posix()[: -len(SUFFIX)]
        return ":".join(self._decode(part) for part in relative.split("/"))

    # ========== SYNC PRIMITIVES (run in a worker thread) ==========

    def _write(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, path)

    def _read(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None

    def _unlink(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)

    def _scan(self) -> List[str]:
        if not self.root.exists():
            return []
        return [self._key_for(p) for p in self.root.rglob(f"*{SUFFIX}") if p.is_file()]

    # ========== CONTRACT ==========

    async def save(self, key: str, value: Any) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Failed to save data to storage (key: {key}): {e}") from e

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read data from storage (key: {key}): {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._unlink, key)
        except OSError as e:
            raise StorageError(f"Failed to delete data from storage (key: {key}): {e}") from e

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path_for(key).exists)

    async def list_keys(self, prefix: Optional[str] = None) -> List[str]:
        try:
            keys = await asyncio.to_thread(self._scan)
        except OSError as e:
            raise StorageError(f"Failed to list storage keys: {e}") from e
        if prefix:
            return [k for k in keys if k.startswith(prefix)]
        return keys
