"""
Hybrid cache: in-memory entries with per-entry expiry, mirrored to the durable
store so a restart can rehydrate them.

The mirror is best-effort. Memory is the source of truth for reads; a failed
mirror write or delete is logged and never raised.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import TypeAdapter

from harvester.config import settings
from harvester.storage.base import BaseStorage
from harvester.storage.keys import StorageKeys
from harvester.utils.date_utils import epoch_ms

logger = logging.getLogger(__name__)

_JSON = TypeAdapter(Any)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    expires_at_epoch_ms: int

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires_at_epoch_ms


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    keys: int = 0


class HybridCache:
    def __init__(
        self,
        default_ttl_seconds: int = None,
        storage: Optional[BaseStorage] = None,
        clock: Callable[[], int] = epoch_ms,
    ):
        self.default_ttl_seconds = (
            default_ttl_seconds if default_ttl_seconds is not None else settings.CACHE_TTL_SECONDS
        )
        self.storage = storage
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._stats = CacheStats()
        self._lock = asyncio.Lock()

    # ========== READ / WRITE ==========

    async def get(self, key: str) -> Optional[Any]:
        expired = None
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(self._clock()):
                expired = self._entries.pop(key)
                entry = None
            if entry is None:
                self._stats.misses += 1
            else:
                self._stats.hits += 1
        if expired is not None:
            await self._delete_from_storage(key)
        return entry.value if entry else None

    async def set(self, key: str, value: Any, ttl_seconds: int = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        entry = CacheEntry(key=key, value=value, expires_at_epoch_ms=self._clock() + int(ttl * 1000))
        async with self._lock:
            self._entries[key] = entry

        if not self.storage:
            return
        try:
            await self.storage.save(
                StorageKeys.cache_key(key),
                {"value": _JSON.dump_python(value, mode="json"), "expires_at": entry.expires_at_epoch_ms},
            )
        except Exception as e:
            logger.error(f"Failed to backup cache entry to storage: {key}: {e}")

    async def has(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)
        await self._delete_from_storage(key)

    async def clear(self, prefix: str = None) -> None:
        async with self._lock:
            if prefix:
                for key in [k for k in self._entries if k.startswith(prefix)]:
                    del self._entries[key]
            else:
                self._entries.clear()

        if not self.storage:
            return
        try:
            await self.storage.clear(StorageKeys.cache_key(prefix or ""))
        except Exception as e:
            logger.error(f"Failed to clear cache mirror (prefix={prefix!r}): {e}")

    async def stats(self) -> CacheStats:
        async with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                keys=len(self._entries),
            )

    # ========== EXPIRY ==========

    async def purge_expired(self) -> int:
        """Drop expired entries from memory and their mirrored copies."""
        now = self._clock()
        async with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        for key in expired:
            await self._delete_from_storage(key)
        if expired:
            logger.debug(f"Expired {len(expired)} cache entries")
        return len(expired)

    async def run_sweeper(self, check_period_seconds: float = None) -> None:
        """Periodic expiry loop; run as a background task and cancel to stop."""
        period = check_period_seconds or settings.CACHE_CHECK_PERIOD_SECONDS
        while True:
            await asyncio.sleep(period)
            try:
                await self.purge_expired()
            except Exception:
                logger.exception("Cache sweeper iteration failed")

    # ========== DURABLE MIRROR ==========

    async def load_from_storage(self) -> int:
        """Rehydrate memory from the mirror; expired copies are deleted."""
        if not self.storage:
            return 0

        try:
            keys = await self.storage.list_keys(StorageKeys.CACHE_PREFIX)
        except Exception as e:
            logger.error(f"Failed to load cache from storage: {e}")
            return 0

        loaded = 0
        now = self._clock()
        for storage_key in keys:
            try:
                data = await self.storage.get(storage_key)
                if not data:
                    continue
                expires_at = int(data.get("expires_at", 0))
                if expires_at <= now:
                    await self.storage.delete(storage_key)
                    continue
                key = StorageKeys.strip_cache_prefix(storage_key)
                async with self._lock:
                    self._entries[key] = CacheEntry(key=key, value=data.get("value"), expires_at_epoch_ms=expires_at)
                loaded += 1
            except Exception as e:
                logger.error(f"Failed to load cache key: {storage_key}: {e}")

        logger.info(f"Loaded {loaded} cache entries from storage")
        return loaded

    async def _delete_from_storage(self, key: str) -> None:
        if not self.storage:
            return
        try:
            await self.storage.delete(StorageKeys.cache_key(key))
        except Exception as e:
            logger.error(f"Failed to delete cache entry from storage: {key}: {e}")
