"""Lookup engine: the uncached public resolve API.

Validates names, picks the protocol handler and drives a fresh
ResolveContext per call. Configuration problems surface as ArgumentError
from the constructor, before any network activity.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from hyperlookup.config import LookupSettings
from hyperlookup.context import ResolveContext
from hyperlookup.doh import DohResolver, SystemResolver
from hyperlookup.errors import ArgumentError, NotFQDNError, RecordNotFoundError
from hyperlookup.fetcher import WellKnownFetcher, build_http_client
from hyperlookup.models.registry import Answer
from hyperlookup.registry import default_registry
from hyperlookup.url import HyperURL

if TYPE_CHECKING:
    import asyncio
    from types import TracebackType

    import httpx

    from hyperlookup.protocols import SystemResolverProtocol
    from hyperlookup.registry import ProtocolHandler, ProtocolRegistry

log = structlog.get_logger()


def _validate_settings(settings: LookupSettings) -> None:
    if not settings.providers():
        raise ArgumentError("At least one DoH provider is required in doh_lookups")
    if settings.min_ttl < 0 or settings.ttl < 0:
        raise ArgumentError("min_ttl and ttl must not be negative")
    if settings.min_ttl > settings.max_ttl:
        raise ArgumentError(
            f"min_ttl ({settings.min_ttl}) must not exceed max_ttl ({settings.max_ttl})"
        )


class HyperLookup:
    """Resolves names to protocol keys via DNS TXT records and well-known documents."""

    def __init__(
        self,
        settings: LookupSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        system_resolver: SystemResolverProtocol | None = None,
        registry: ProtocolRegistry | None = None,
    ) -> None:
        self.settings = settings or LookupSettings()
        _validate_settings(self.settings)

        self.registry = registry or default_registry()
        # Regex overrides apply to the instance's default protocol only.
        self._default_handler = self.registry.get(self.settings.protocol).with_patterns(
            key_regex=self.settings.key_regex,
            txt_regex=self.settings.txt_regex,
        )

        self._owns_client = client is None
        self._client = client or build_http_client(self.settings)
        self._doh = DohResolver(
            self._client,
            self.settings.providers(),
            user_agent=self.settings.user_agent,
            system_resolver=system_resolver if system_resolver is not None else SystemResolver(),
        )
        self._fetcher = WellKnownFetcher(
            self._client,
            user_agent=self.settings.user_agent,
            cors_warning=self.settings.cors_warning,
        )

    @property
    def protocol(self) -> str:
        return self._default_handler.schema

    def handler(self, protocol: str | None = None) -> ProtocolHandler:
        """Handler for ``protocol`` (default: this instance's protocol). Raises ArgumentError."""
        if protocol is None or protocol.rstrip(":") == self._default_handler.schema:
            return self._default_handler
        return self.registry.get(protocol)

    def extract_domain(self, handler: ProtocolHandler, name: str) -> tuple[str | None, str]:
        """Split ``name`` into (key, domain); exactly one of them is meaningful.

        ``name`` may be a raw key, a domain or a full URL whose host is either.
        Raises NotFQDNError / ArgumentError for anything else.
        """
        if not isinstance(name, str) or not name.strip():
            raise ArgumentError(f"A name is required, got {name!r}")
        name = name.strip()

        key = handler.match_key(name)
        if key is not None:
            return key, ""

        try:
            hostname = HyperURL.parse(name).hostname
        except ArgumentError:
            raise NotFQDNError(name) from None

        key = handler.match_key(hostname)
        if key is not None:
            return key, ""

        domain = hostname.rstrip(".")
        if "." in domain:
            return None, domain
        if domain.lower() == "localhost" and self.settings.allow_localhost:
            return None, domain
        raise NotFQDNError(name)

    def create_context(
        self,
        *,
        no_well_known: bool | None = None,
        signal: asyncio.Event | None = None,
    ) -> ResolveContext:
        return ResolveContext(
            self._doh,
            self._fetcher,
            no_well_known=self.settings.no_well_known if no_well_known is None else no_well_known,
            signal=signal,
        )

    async def resolve_answer(
        self,
        protocol: str | None,
        name: str,
        *,
        no_well_known: bool | None = None,
        signal: asyncio.Event | None = None,
    ) -> Answer:
        """Resolve ``name`` for ``protocol`` to a key together with its TTL."""
        handler = self.handler(protocol)
        key, domain = self.extract_domain(handler, name)
        if key is not None:
            return Answer(key=key, ttl=None)

        context = self.create_context(no_well_known=no_well_known, signal=signal)
        answer = await context.resolve(handler, domain)
        if answer is None:
            log.info("resolve_not_found", protocol=handler.schema, name=domain)
            raise RecordNotFoundError(domain)

        log.info("resolve_complete", protocol=handler.schema, name=domain, ttl=answer.ttl)
        return answer

    async def resolve_protocol(self, protocol: str, name: str, **opts: Any) -> str:
        answer = await self.resolve_answer(protocol, name, **opts)
        return answer.key

    async def resolve_name(self, name: str, **opts: Any) -> str:
        return await self.resolve_protocol(self.protocol, name, **opts)

    async def resolve(self, name: str, **opts: Any) -> dict[str, str | None]:
        """Resolve ``name`` for every registered protocol, in registration order.

        Protocols without a key map to None. Argument and abort errors propagate.
        """
        keys: dict[str, str | None] = {}
        for handler in self.registry:
            try:
                keys[handler.schema] = await self.resolve_protocol(handler.schema, name, **opts)
            except RecordNotFoundError:
                keys[handler.schema] = None
        return keys

    async def resolve_url(self, url: str | HyperURL, **opts: Any) -> HyperURL:
        """Resolve the host of ``url`` to a key, keeping every other part intact.

        Bare names get this instance's protocol. URLs of protocols that are not
        registered (``https://...``) are returned unchanged.
        """
        parsed = url if isinstance(url, HyperURL) else HyperURL.parse(url, self.protocol)
        if parsed.schema not in self.registry:
            return parsed
        key = await self.resolve_protocol(parsed.schema, parsed.hostname, **opts)
        return parsed.with_hostname(key)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HyperLookup:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
