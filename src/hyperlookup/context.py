"""Per-call resolution context.

A ResolveContext is created for one resolution and handed to the protocol
handler. It gives the handler its two network primitives and makes sure
both honour the caller's abort signal: when the signal is set, the
outstanding request is cancelled (releasing its connection) and the
resolution fails with AbortedError.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

import structlog

from hyperlookup.errors import AbortedError, RecordNotFoundError

if TYPE_CHECKING:
    import re
    from collections.abc import Coroutine
    from typing import Any

    from hyperlookup.doh import DohResolver
    from hyperlookup.fetcher import WellKnownFetcher
    from hyperlookup.models.registry import Answer
    from hyperlookup.registry import ProtocolHandler

log = structlog.get_logger()

T = TypeVar("T")


class ResolveContext:
    """Wires a protocol handler to the DoH chain and the well-known fetcher."""

    def __init__(
        self,
        doh: DohResolver,
        fetcher: WellKnownFetcher,
        *,
        no_well_known: bool = False,
        signal: asyncio.Event | None = None,
    ) -> None:
        self._doh = doh
        self._fetcher = fetcher
        self.no_well_known = no_well_known
        self.signal = signal
        self._name = ""

    @property
    def aborted(self) -> bool:
        return self.signal is not None and self.signal.is_set()

    async def _abortable(self, coro: Coroutine[Any, Any, T]) -> T:
        """Await ``coro`` unless the abort signal fires first."""
        if self.signal is None:
            return await coro
        if self.signal.is_set():
            coro.close()
            raise AbortedError(self._name)

        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self.signal.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        log.debug("resolve_aborted", name=self._name)
        raise AbortedError(self._name)

    async def get_dns_txt_record(self, domain: str, txt_regex: re.Pattern[str]) -> Answer | None:
        try:
            return await self._abortable(self._doh.lookup_txt(domain, txt_regex))
        except RecordNotFoundError:
            return None

    async def fetch_well_known(
        self,
        domain: str,
        schema: str,
        key_regex: re.Pattern[str],
        redirect_limit: int,
    ) -> Answer | None:
        return await self._abortable(
            self._fetcher.fetch(domain, schema, key_regex, redirect_limit)
        )

    async def resolve(self, handler: ProtocolHandler, name: str) -> Answer | None:
        """Run ``handler`` for ``name``; a failed attempt for this protocol yields None."""
        self._name = name
        if self.aborted:
            raise AbortedError(name)
        try:
            return await handler.resolve(self, name)
        except RecordNotFoundError as exc:
            log.info(
                "protocol_attempt_failed",
                protocol=handler.schema,
                name=name,
                reason=exc.message,
            )
            return None
