"""Integration test fixtures.

Provides a fully wired ResolverState backed by an SQLite file in a temporary
directory. HTTP traffic is intercepted with respx inside each test.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from hyperlookup.config import CacheSettings, Settings
from hyperlookup.state import ResolverState, open_state
from tests.helpers import StubSystemResolver, make_settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        lookup=make_settings(min_ttl=0),
        cache=CacheSettings(db_path=str(tmp_path / "cache.db")),
    )


@pytest.fixture()
async def state(settings: Settings) -> AsyncGenerator[ResolverState, None]:
    async with open_state(settings) as resolver_state:
        resolver_state.system_resolver = StubSystemResolver()
        yield resolver_state
