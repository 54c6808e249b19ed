"""Cached lookup engine.

Adds to HyperLookup:
- a bounded in-memory TTL cache (``cachetools.LRUCache`` of CacheEntry)
- an optional persistent cache behind the PersistentCache contract
- single-flight coalescing: concurrent lookups of one name share one task

Per name the state moves absent → in-flight → cached-fresh → cached-expired,
and back to absent through ``flush``/``clear``/``clear_name``.

Persistent cache failures are logged with ``exc_info=True`` and treated as a
miss; they never reach the caller.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog
from cachetools import LRUCache
from pydantic import ValidationError

from hyperlookup.config import CacheSettings
from hyperlookup.errors import AbortedError, RecordNotFoundError
from hyperlookup.lookup import HyperLookup
from hyperlookup.models.cache import CacheEntry
from hyperlookup.protocols import as_persistent_cache

if TYPE_CHECKING:
    import httpx

    from hyperlookup.config import LookupSettings
    from hyperlookup.protocols import SystemResolverProtocol
    from hyperlookup.registry import ProtocolHandler, ProtocolRegistry

log = structlog.get_logger()


def _now_ms() -> float:
    return time.time() * 1000


class HyperCachedLookup(HyperLookup):
    """HyperLookup with TTL caching, persistence hooks and request coalescing."""

    def __init__(
        self,
        settings: LookupSettings | None = None,
        *,
        persistent_cache: object | None = None,
        cache_settings: CacheSettings | None = None,
        client: httpx.AsyncClient | None = None,
        system_resolver: SystemResolverProtocol | None = None,
        registry: ProtocolRegistry | None = None,
    ) -> None:
        super().__init__(
            settings,
            client=client,
            system_resolver=system_resolver,
            registry=registry,
        )
        cache_settings = cache_settings or CacheSettings()
        self.persistent_cache = as_persistent_cache(persistent_cache)
        self.cache: LRUCache[str, CacheEntry] = LRUCache(maxsize=cache_settings.max_size)
        # (protocol, name) → the task currently resolving it
        self.processes: dict[tuple[str, str], asyncio.Task[CacheEntry]] = {}
        self._closed = False

    # ------------------------------------------------------------------
    # TTL arithmetic
    # ------------------------------------------------------------------

    def ttl_for(self, record_ttl: float | None) -> float:
        """Cache lifetime in seconds: record TTL (or default) clamped to [min_ttl, max_ttl]."""
        ttl = self.settings.ttl if record_ttl is None else record_ttl
        return min(max(ttl, self.settings.min_ttl), self.settings.max_ttl)

    def expires_for(self, record_ttl: float | None, now_ms: float | None = None) -> float:
        now_ms = _now_ms() if now_ms is None else now_ms
        return now_ms + self.ttl_for(record_ttl) * 1000

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup(
        self,
        name: str,
        *,
        protocol: str | None = None,
        ignore_cache: bool = False,
        ignore_cached_miss: bool = False,
        no_well_known: bool | None = None,
        signal: asyncio.Event | None = None,
    ) -> asyncio.Task[CacheEntry]:
        """Return the task resolving ``name``; concurrent callers get the same task.

        Check-and-insert happens without suspending, so two callers can never
        both start a resolution for one (protocol, name) pair. The name is
        validated first (ArgumentError / NotFQDNError, raised here), so no cache
        is consulted for a name that is neither a key nor a domain.

        A joined caller shares the first caller's ``signal``: if that fires, the
        shared task fails with AbortedError. ``resolve_protocol`` retries such a
        task for callers whose own signal has not fired.
        """
        handler = self.handler(protocol)
        raw_key, _domain = self.extract_domain(handler, name)
        process_key = (handler.schema, name)

        task = self.processes.get(process_key)
        if task is not None:
            return task

        task = asyncio.ensure_future(
            self._lookup(
                process_key,
                handler,
                name,
                raw_key=raw_key,
                ignore_cache=ignore_cache,
                ignore_cached_miss=ignore_cached_miss,
                no_well_known=no_well_known,
                signal=signal,
            )
        )
        self.processes[process_key] = task
        # Only matters for tasks cancelled before they ever ran.
        task.add_done_callback(lambda done: self._release(process_key, done))
        return task

    def _release(self, process_key: tuple[str, str], task: asyncio.Future[Any] | None) -> None:
        if self.processes.get(process_key) is task:
            del self.processes[process_key]

    async def _lookup(
        self,
        process_key: tuple[str, str],
        handler: ProtocolHandler,
        name: str,
        *,
        raw_key: str | None,
        ignore_cache: bool,
        ignore_cached_miss: bool,
        no_well_known: bool | None,
        signal: asyncio.Event | None,
    ) -> CacheEntry:
        try:
            if raw_key is not None:
                return CacheEntry(
                    name=name,
                    keys={handler.schema: raw_key},
                    expires=self.expires_for(self.settings.max_ttl),
                )

            if not ignore_cache:
                entry = self._read_memory(handler, name, ignore_cached_miss=ignore_cached_miss)
                if entry is not None:
                    log.debug("cache_hit", source="memory", name=name)
                    return entry

                entry = await self._read_persistent(
                    handler, name, ignore_cached_miss=ignore_cached_miss
                )
                if entry is not None:
                    log.debug("cache_hit", source="persistent", name=name)
                    entry = self._merge(name, entry)
                    self.cache[name] = entry
                    return entry

            return await self._resolve_and_store(
                handler, name, no_well_known=no_well_known, signal=signal
            )
        finally:
            # Released before the task settles so no caller sees a stale entry.
            self._release(process_key, asyncio.current_task())

    def _read_memory(
        self, handler: ProtocolHandler, name: str, *, ignore_cached_miss: bool
    ) -> CacheEntry | None:
        entry = self.cache.get(name)
        if entry is None or not entry.is_fresh(_now_ms()):
            return None
        if handler.schema not in entry.keys:
            return None
        if entry.keys[handler.schema] is None and ignore_cached_miss:
            return None
        return entry

    async def _read_persistent(
        self, handler: ProtocolHandler, name: str, *, ignore_cached_miss: bool
    ) -> CacheEntry | None:
        try:
            raw = await self.persistent_cache.read(name)
        except Exception:
            log.warning("persistent_cache_read_error", name=name, exc_info=True)
            return None
        if raw is None:
            return None

        entry = self.validate_persisted(handler, name, raw)
        if entry is None:
            log.info("persistent_cache_entry_ignored", name=name)
            return None
        if entry.keys[handler.schema] is None and ignore_cached_miss:
            return None
        return entry

    def validate_persisted(
        self, handler: ProtocolHandler, name: str, raw: object, now_ms: float | None = None
    ) -> CacheEntry | None:
        """Turn a persistent cache result into a CacheEntry, or None if unusable.

        Accepted only when ``expires`` is a finite number in the window
        ``(now, now + max_ttl]``, ``keys`` is a mapping and the protocol's key
        is either None or valid for the protocol. Keys of other protocols are
        kept only when they are registered and valid for their protocol.
        """
        if isinstance(raw, CacheEntry):
            raw = raw.model_dump()
        if not isinstance(raw, Mapping):
            return None

        try:
            entry = CacheEntry.model_validate(
                {"name": name, "keys": raw.get("keys"), "expires": raw.get("expires")}
            )
        except ValidationError:
            return None

        now_ms = _now_ms() if now_ms is None else now_ms
        if not entry.is_fresh(now_ms):
            return None
        if entry.expires > now_ms + self.settings.max_ttl * 1000:
            return None
        if handler.schema not in entry.keys:
            return None
        key = entry.keys[handler.schema]
        if key is not None and handler.match_key(key) is None:
            return None
        keys = {
            protocol: value
            for protocol, value in entry.keys.items()
            if self._usable_key(protocol, value)
        }
        return entry.model_copy(update={"keys": keys})

    def _usable_key(self, protocol: str, key: str | None) -> bool:
        if protocol not in self.registry:
            return False
        return key is None or self.handler(protocol).match_key(key) is not None

    def _merge(self, name: str, entry: CacheEntry) -> CacheEntry:
        """Fold ``entry`` into the fresh in-memory entry for ``name``, if any.

        One entry holds the keys of every protocol resolved for a name; it
        expires with the earliest of them.
        """
        current = self.cache.get(name)
        if current is None or not current.is_fresh(_now_ms()):
            return entry
        return CacheEntry(
            name=name,
            keys={**current.keys, **entry.keys},
            expires=min(current.expires, entry.expires),
        )

    async def _resolve_and_store(
        self,
        handler: ProtocolHandler,
        name: str,
        *,
        no_well_known: bool | None,
        signal: asyncio.Event | None,
    ) -> CacheEntry:
        key: str | None
        try:
            answer = await self.resolve_answer(
                handler.schema, name, no_well_known=no_well_known, signal=signal
            )
        except RecordNotFoundError:
            if not self.settings.cache_misses:
                raise
            key, ttl = None, None
        else:
            key, ttl = answer.key, answer.ttl

        entry = self._merge(
            name, CacheEntry(name=name, keys={handler.schema: key}, expires=self.expires_for(ttl))
        )
        self.cache[name] = entry
        try:
            await self.persistent_cache.write(entry)
        except Exception:
            log.warning("persistent_cache_write_error", name=name, exc_info=True)
        return entry

    async def resolve_protocol(self, protocol: str, name: str, **opts: Any) -> str:
        signal: asyncio.Event | None = opts.get("signal")
        while True:
            # shield: a cancelled caller must not cancel the task other callers share
            try:
                entry = await asyncio.shield(self.lookup(name, protocol=protocol, **opts))
            except AbortedError:
                if signal is not None and signal.is_set():
                    raise
                # Aborted by the signal of the caller that started the shared task.
                log.debug("shared_lookup_aborted", protocol=protocol, name=name)
                continue
            break
        key = entry.keys.get(self.handler(protocol).schema)
        if key is None:
            raise RecordNotFoundError(name)
        return key

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear_name(self, name: str) -> None:
        self.cache.pop(name, None)
        await self._persistent_call("clear_name", name)

    async def clear(self) -> None:
        self.cache.clear()
        await self._persistent_call("clear")

    async def flush(self) -> None:
        """Drop expired in-memory entries; the persistent cache sweeps its own."""
        now_ms = _now_ms()
        expired = [name for name, entry in self.cache.items() if entry.expires <= now_ms]
        for name in expired:
            del self.cache[name]
        log.debug("cache_flushed", removed=len(expired))
        await self._persistent_call("flush")

    async def close(self) -> None:
        """Close the persistent cache (once) and an owned HTTP client."""
        if self._closed:
            return
        self._closed = True
        await self._persistent_call("close")
        await super().aclose()

    async def aclose(self) -> None:
        await self.close()

    async def _persistent_call(self, method: str, *args: Any) -> None:
        try:
            await getattr(self.persistent_cache, method)(*args)
        except Exception:
            log.warning("persistent_cache_error", method=method, exc_info=True)
