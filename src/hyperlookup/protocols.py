"""Protocol interfaces for swappable collaborators.

The lookup engines reference these interfaces, not concrete implementations.
This allows:
- Tests to use lightweight in-memory stand-ins
- Other persistent stores (Redis, files, ...) to be plugged in without
  touching the lookup code
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    import re

    from hyperlookup.models.cache import CacheEntry
    from hyperlookup.models.registry import Answer


class ResolveContextProtocol(Protocol):
    """What a protocol handler may use while resolving one name."""

    no_well_known: bool

    async def get_dns_txt_record(
        self, domain: str, txt_regex: re.Pattern[str]
    ) -> Answer | None: ...

    async def fetch_well_known(
        self,
        domain: str,
        schema: str,
        key_regex: re.Pattern[str],
        redirect_limit: int,
    ) -> Answer | None: ...


class SystemResolverProtocol(Protocol):
    """Last-resort TXT lookup through the operating system's DNS configuration."""

    async def resolve_txt(self, domain: str) -> list[str]: ...


class PersistentCache:
    """Persistent cache contract. Every method defaults to a no-op.

    ``read`` returns something shaped like ``{"keys": {...}, "expires": <ms>}``
    or None; the caller validates the shape, so implementations need not.
    """

    async def read(self, name: str) -> Any:
        return None

    async def write(self, entry: CacheEntry) -> None:
        return None

    async def clear_name(self, name: str) -> None:
        return None

    async def clear(self) -> None:
        return None

    async def flush(self) -> None:
        return None

    async def close(self) -> None:
        return None


PERSISTENT_CACHE_METHODS = ("read", "write", "clear_name", "clear", "flush", "close")


class DuckTypedPersistentCache(PersistentCache):
    """Adapts an arbitrary object implementing any subset of the contract.

    Capabilities are looked up once, at construction. Methods may be plain
    functions or coroutines.
    """

    def __init__(self, target: object) -> None:
        self.target = target
        self.capabilities = frozenset(
            name for name in PERSISTENT_CACHE_METHODS if callable(getattr(target, name, None))
        )

    async def _call(self, method: str, *args: Any) -> Any:
        if method not in self.capabilities:
            return None
        result = getattr(self.target, method)(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def read(self, name: str) -> Any:
        return await self._call("read", name)

    async def write(self, entry: CacheEntry) -> None:
        await self._call("write", entry)

    async def clear_name(self, name: str) -> None:
        await self._call("clear_name", name)

    async def clear(self) -> None:
        await self._call("clear")

    async def flush(self) -> None:
        await self._call("flush")

    async def close(self) -> None:
        await self._call("close")


def as_persistent_cache(target: object | None) -> PersistentCache:
    """Normalise a configured persistent cache into the PersistentCache contract."""
    if target is None:
        return PersistentCache()
    if isinstance(target, PersistentCache):
        return target
    return DuckTypedPersistentCache(target)
