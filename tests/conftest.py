"""Shared test fixtures for the hyperlookup test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from hyperlookup.cached import HyperCachedLookup
from hyperlookup.lookup import HyperLookup
from tests.helpers import StubSystemResolver, make_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@pytest.fixture()
def system_resolver() -> StubSystemResolver:
    return StubSystemResolver()


@pytest.fixture()
async def client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient() as http_client:
        yield http_client


@pytest.fixture()
def lookup(client: httpx.AsyncClient, system_resolver: StubSystemResolver) -> HyperLookup:
    """Uncached lookup against the single mocked DoH provider."""
    return HyperLookup(make_settings(), client=client, system_resolver=system_resolver)


@pytest.fixture()
def cached_lookup(
    client: httpx.AsyncClient, system_resolver: StubSystemResolver
) -> HyperCachedLookup:
    """Cached lookup without a TTL floor so short record TTLs are honoured."""
    return HyperCachedLookup(
        make_settings(min_ttl=0), client=client, system_resolver=system_resolver
    )
