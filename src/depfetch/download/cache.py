"""
Metadata Cache for the depfetch Download Subsystem

This module keeps fetched package metadata in memory for the whole session,
mirrors it to a persistent store, and collapses concurrent loads of the same
key into a single in-flight request.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from depfetch.constants import CACHE_KEY_SEPARATOR, CACHE_STORAGE_KEY
from depfetch.exceptions import StorageError
from depfetch.log_utils import logger

from .interfaces import PackageMetadata, PersistentStore
from .storage import MemoryStore


def normalize_registry(registry: str) -> str:
    """Strip surrounding whitespace and trailing slashes from a registry base URL."""
    return registry.strip().rstrip("/")


def make_cache_key(registry: str, name: str) -> str:
    """Build the cache key for a (registry, package name) pair."""
    return f"{normalize_registry(registry)}{CACHE_KEY_SEPARATOR}{name}"


class MetadataCache:
    """
    Session cache of PackageMetadata keyed by (registry, name).

    Entries are written once and never overwritten until clear(). Every write
    schedules a best-effort persistence of the whole cache; failures are
    logged and never reach the caller.
    """

    def __init__(
        self,
        store: Optional[PersistentStore] = None,
        storage_key: str = CACHE_STORAGE_KEY,
    ) -> None:
        """
        Parameters:
            store (Optional[PersistentStore]): Backing store; an in-memory store is used when omitted.
            storage_key (str): Key under which the whole cache is persisted.
        """
        self.store: PersistentStore = store if store is not None else MemoryStore()
        self.storage_key = storage_key
        self._entries: Dict[str, PackageMetadata] = {}
        self._inflight: Dict[str, "asyncio.Future[PackageMetadata]"] = {}
        self._pending: Set["asyncio.Task[None]"] = set()
        self._persist_queued = False
        self._persist_lock: Optional[asyncio.Lock] = None
        self._generation = 0
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the lock binds to the running loop
        if self._persist_lock is None:
            self._persist_lock = asyncio.Lock()
        return self._persist_lock

    async def load(self) -> int:
        """
        Populate the in-memory mapping from the persistent store.

        Entries already present in memory win over persisted ones. Malformed
        persisted entries are skipped.

        Returns:
            int: Number of entries loaded.
        """
        try:
            saved = await self.store.load(self.storage_key)
        except (StorageError, OSError) as e:
            logger.warning(f"Could not load metadata cache: {e}")
            return 0

        if saved is None:
            return 0
        if not isinstance(saved, dict):
            logger.warning(
                f"Ignoring persisted metadata cache of type {type(saved).__name__}"
            )
            return 0

        loaded = 0
        for key, raw in saved.items():
            if key in self._entries or not isinstance(raw, dict):
                continue
            try:
                self._entries[key] = PackageMetadata.from_dict(raw)
            except ValueError as e:
                logger.debug(f"Skipping malformed cache entry {key}: {e}")
                continue
            loaded += 1

        logger.debug(f"Loaded {loaded} cached metadata entries from {self.store!r}")
        return loaded

    def get(self, key: str) -> Optional[PackageMetadata]:
        return self._entries.get(key)

    def put(self, key: str, value: PackageMetadata) -> bool:
        """
        Store `value` under `key` unless the key is already cached.

        Returns:
            bool: True if the entry was written, False if an entry already existed.
        """
        if key in self._entries:
            logger.debug(f"Cache entry {key} already present; keeping existing value")
            return False
        self._entries[key] = value
        self._schedule_persist()
        return True

    async def get_or_load(
        self, key: str, loader: Callable[[], Awaitable[PackageMetadata]]
    ) -> PackageMetadata:
        """
        Return the cached value for `key`, calling `loader` on a miss.

        Concurrent callers for the same missing key share one loader call and
        receive the same value or the same exception. A load that started
        before clear() still returns its value but is not written back.
        """
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            self.hits += 1
            return await asyncio.shield(pending)

        self.misses += 1
        future: "asyncio.Future[PackageMetadata]" = (
            asyncio.get_running_loop().create_future()
        )
        self._inflight[key] = future
        generation = self._generation
        try:
            value = await loader()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Mark retrieved; waiters (if any) re-raise it themselves
            future.exception()
            raise
        else:
            if generation == self._generation:
                self.put(key, value)
            future.set_result(value)
            return value
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    async def clear(self) -> None:
        """
        Drop every entry from memory and from the persistent store.

        The in-memory mapping is empty before this coroutine first suspends,
        so no later get() can observe a cleared entry.
        """
        self._entries = {}
        self._inflight = {}
        self._generation += 1
        async with self._get_lock():
            try:
                await self.store.delete(self.storage_key)
            except (StorageError, OSError) as e:
                logger.warning(f"Could not clear persisted metadata cache: {e}")
        logger.info("Cache cleared")

    def _schedule_persist(self) -> None:
        if self._persist_queued:
            # A queued write snapshots the entries when it runs, so it covers this put too
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; metadata cache not persisted")
            return
        self._persist_queued = True
        task = loop.create_task(self._persist())
        self._pending.add(task)
        task.add_done_callback(self._on_persist_done)

    async def _persist(self) -> None:
        async with self._get_lock():
            self._persist_queued = False
            if not self._entries:
                return
            snapshot: Dict[str, Any] = {
                key: value.to_dict() for key, value in self._entries.items()
            }
            await self.store.save(self.storage_key, snapshot)

    def _on_persist_done(self, task: "asyncio.Task[None]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            self._persist_queued = False
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(f"Could not persist metadata cache: {exc}")

    async def wait_for_pending(self) -> None:
        """Wait until every scheduled persistence write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
