"""Resolver state container.

ResolverState is created once by the embedding application (inside
``open_state``) and holds every long-lived resource a lookup needs: the
settings, the shared HTTP client and the persistent cache. Lookups built
from it share those resources; nothing is kept in module globals.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from hyperlookup.cache import SQLiteCache
from hyperlookup.cached import HyperCachedLookup
from hyperlookup.config import Settings
from hyperlookup.fetcher import build_http_client

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from hyperlookup.protocols import PersistentCache, SystemResolverProtocol
    from hyperlookup.registry import ProtocolRegistry

log = structlog.get_logger()


@dataclass
class ResolverState:
    """Holds all shared runtime state. Passed to every lookup it creates."""

    settings: Settings
    http_client: httpx.AsyncClient
    persistent_cache: PersistentCache | None = None
    system_resolver: SystemResolverProtocol | None = None
    registry: ProtocolRegistry | None = None

    def create_lookup(self, **overrides: object) -> HyperCachedLookup:
        """Build a cached lookup bound to this state; ``overrides`` patch LookupSettings."""
        settings = self.settings.lookup.model_copy(update=overrides)
        return HyperCachedLookup(
            settings,
            persistent_cache=self.persistent_cache,
            cache_settings=self.settings.cache,
            client=self.http_client,
            system_resolver=self.system_resolver,
            registry=self.registry,
        )


@asynccontextmanager
async def open_state(
    settings: Settings | None = None,
    *,
    persistent: bool = True,
) -> AsyncGenerator[ResolverState, None]:
    """Create the shared HTTP client and SQLite cache, and close both on exit."""
    settings = settings or Settings()
    persistent_cache = SQLiteCache.from_settings(settings.cache) if persistent else None

    async with build_http_client(settings.lookup) as client:
        state = ResolverState(
            settings=settings,
            http_client=client,
            persistent_cache=persistent_cache,
        )
        log.debug("resolver_state_opened", persistent=persistent)
        try:
            yield state
        finally:
            if persistent_cache is not None:
                await persistent_cache.close()
