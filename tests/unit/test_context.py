"""Unit tests for hyperlookup.context: abort handling."""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from hyperlookup.cached import HyperCachedLookup
from hyperlookup.errors import AbortedError
from hyperlookup.lookup import HyperLookup
from tests.helpers import DOH_URL, TEST_KEY, StubSystemResolver, doh_answer, make_settings


class HangingSystemResolver(StubSystemResolver):
    """Sets ``signal`` once called, then never answers."""

    def __init__(self, signal: asyncio.Event) -> None:
        super().__init__()
        self.signal = signal
        self.cancelled = False

    async def resolve_txt(self, domain: str) -> list[str]:
        self.calls.append(domain)
        self.signal.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return []


async def test_signal_set_before_call(lookup: HyperLookup) -> None:
    signal = asyncio.Event()
    signal.set()
    with respx.mock:
        with pytest.raises(AbortedError):
            await lookup.resolve_name("hello.com", signal=signal)


async def test_signal_set_during_call_cancels_request(client: httpx.AsyncClient) -> None:
    signal = asyncio.Event()
    system = HangingSystemResolver(signal)
    lookup = HyperLookup(make_settings(), client=client, system_resolver=system)
    with respx.mock:
        respx.get(DOH_URL).mock(return_value=httpx.Response(500))
        with pytest.raises(AbortedError):
            await lookup.resolve_name("hello.com", signal=signal)
    await asyncio.sleep(0.01)
    assert system.calls == ["hello.com"]
    assert system.cancelled is True


async def test_unset_signal_has_no_effect(lookup: HyperLookup) -> None:
    with respx.mock:
        respx.get(DOH_URL).mock(return_value=doh_answer({"data": f"datkey={TEST_KEY}"}))
        assert await lookup.resolve_name("hello.com", signal=asyncio.Event()) == TEST_KEY


async def test_raw_key_ignores_signal(lookup: HyperLookup) -> None:
    signal = asyncio.Event()
    signal.set()
    assert await lookup.resolve_name(TEST_KEY, signal=signal) == TEST_KEY


async def test_aborted_lookup_releases_in_flight_entry(
    cached_lookup: HyperCachedLookup,
) -> None:
    signal = asyncio.Event()
    signal.set()
    with respx.mock:
        with pytest.raises(AbortedError):
            await cached_lookup.resolve_name("hello.com", signal=signal)
    assert cached_lookup.processes == {}
    assert "hello.com" not in cached_lookup.cache
