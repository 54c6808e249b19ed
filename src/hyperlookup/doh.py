"""DNS-over-HTTPS TXT lookups with an ordered provider fallback chain.

Providers speak the JSON flavour of DoH (``accept: application/dns-json``)
served by Cloudflare, Google and Quad9. Each provider is tried in order; any
failure moves on to the next one. When every provider has failed, the
operating system's resolver is asked once before giving up.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

import dns.asyncresolver
import dns.exception
import httpx
import structlog

from hyperlookup.config import DEFAULT_USER_AGENT
from hyperlookup.errors import RecordNotFoundError
from hyperlookup.models.registry import Answer

if TYPE_CHECKING:
    import re
    from collections.abc import Iterable

    from hyperlookup.protocols import SystemResolverProtocol

log = structlog.get_logger()

DNS_JSON = "application/dns-json"


def _record_ttl(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return float(value)


def select_answer(records: Iterable[Any], txt_regex: re.Pattern[str]) -> Answer | None:
    """Pick the largest key among the usable TXT answers.

    Entries that are not objects, carry no string ``data`` or whose data does
    not match ``txt_regex`` are skipped. Choosing the maximum keeps the result
    independent of the order the provider returned the records in.
    """
    best: tuple[str, Any] | None = None
    for record in records:
        if not isinstance(record, dict):
            continue
        data = record.get("data")
        if not isinstance(data, str):
            continue
        match = txt_regex.match(data)
        if match is None or not match.group(1):
            continue
        key = match.group(1)
        if best is None or key > best[0]:
            best = (key, record.get("TTL"))

    if best is None:
        return None
    key, ttl = best
    return Answer(key=key, ttl=_record_ttl(ttl))


class SystemResolver:
    """TXT lookups through the system's DNS configuration (resolv.conf et al.)."""

    def __init__(self, resolver: dns.asyncresolver.Resolver | None = None) -> None:
        self._resolver = resolver

    async def resolve_txt(self, domain: str) -> list[str]:
        try:
            if self._resolver is None:
                self._resolver = dns.asyncresolver.Resolver()
            answer = await self._resolver.resolve(domain, "TXT")
        except dns.exception.DNSException as exc:
            log.info("system_dns_failed", domain=domain, error=str(exc))
            return []
        return [
            b"".join(rdata.strings).decode("utf-8", errors="replace") for rdata in answer
        ]


class DohResolver:
    """Resolves TXT records through an ordered chain of DoH providers."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        providers: list[str],
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        system_resolver: SystemResolverProtocol | None = None,
    ) -> None:
        self._client = client
        self.providers = list(providers)
        self._user_agent = user_agent
        self._system_resolver = system_resolver

    async def lookup_txt(self, domain: str, txt_regex: re.Pattern[str]) -> Answer:
        """Return the best matching TXT answer for ``domain``.

        Raises RecordNotFoundError once every provider and the system
        resolver have come up empty.
        """
        for provider in self.providers:
            try:
                answer = await self._query(provider, domain, txt_regex)
            except (httpx.HTTPError, ValueError) as exc:
                log.info("doh_lookup_failed", provider=provider, domain=domain, error=str(exc))
                continue
            if answer is not None:
                log.debug("doh_lookup_complete", provider=provider, domain=domain, ttl=answer.ttl)
                return answer

        answer = await self._system_fallback(domain, txt_regex)
        if answer is None:
            raise RecordNotFoundError(domain, f"No TXT record found for {domain!r}")
        return answer

    async def _query(
        self, provider: str, domain: str, txt_regex: re.Pattern[str]
    ) -> Answer | None:
        response = await self._client.get(
            provider,
            params={"name": f"{domain}.", "type": "TXT"},
            headers={"accept": DNS_JSON, "user-agent": self._user_agent},
        )
        if not response.is_success:
            log.info(
                "doh_lookup_http_error",
                provider=provider,
                domain=domain,
                status_code=response.status_code,
            )
            return None

        body = response.json()
        if not isinstance(body, dict):
            log.info("doh_lookup_invalid_body", provider=provider, domain=domain)
            return None

        records = body.get("Answer")
        if not isinstance(records, list):
            log.debug("doh_lookup_no_answer", provider=provider, domain=domain)
            return None

        return select_answer(records, txt_regex)

    async def _system_fallback(self, domain: str, txt_regex: re.Pattern[str]) -> Answer | None:
        if self._system_resolver is None:
            return None

        log.info("doh_providers_exhausted", domain=domain, fallback="system_dns")
        try:
            texts = await self._system_resolver.resolve_txt(domain)
        except Exception:
            log.warning("system_dns_error", domain=domain, exc_info=True)
            return None
        return select_answer(({"data": text} for text in texts), txt_regex)
