"""Well-known document fetcher.

A domain can publish its key at ``https://<domain>/.well-known/<schema>``:

    <key>
    ttl=3600

The first line is the key, every following line a ``name=value`` pair of
which only ``ttl`` is used. The Fetcher receives an httpx.AsyncClient via
constructor injection; whoever builds the client owns its lifecycle.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import httpx
import structlog

from hyperlookup.config import DEFAULT_USER_AGENT, WELL_KNOWN_REDIRECT_LIMIT, LookupSettings
from hyperlookup.errors import RecordNotFoundError
from hyperlookup.models.registry import Answer

if TYPE_CHECKING:
    import re

log = structlog.get_logger()

CORS_HEADER = "access-control-allow-origin"


def build_http_client(settings: LookupSettings | None = None) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once per resolver state."""
    settings = settings or LookupSettings()
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def parse_ttl(value: str) -> float | None:
    """Parse a TTL in seconds; None for anything that is not a finite, non-negative number."""
    try:
        ttl = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(ttl) or ttl < 0:
        return None
    return ttl


def parse_well_known(body: str, key_regex: re.Pattern[str]) -> Answer | None:
    """Extract the key (and optional TTL) from a well-known document body."""
    lines = body.splitlines()
    if not lines:
        return None

    match = key_regex.match(lines[0].strip())
    if match is None:
        return None

    ttl: float | None = None
    for line in lines[1:]:
        name, sep, value = line.partition("=")
        if not sep or name.strip().lower() != "ttl":
            continue
        parsed = parse_ttl(value)
        if parsed is None:
            log.debug("well_known_ttl_invalid", value=value.strip())
            continue
        ttl = parsed

    return Answer(key=match.group(1), ttl=ttl)


class WellKnownFetcher:
    """Fetches ``/.well-known/<schema>`` documents with bounded redirect handling."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        cors_warning: bool = True,
    ) -> None:
        self._client = client
        self._user_agent = user_agent
        self._cors_warning = cors_warning

    async def fetch(
        self,
        domain: str,
        schema: str,
        key_regex: re.Pattern[str],
        redirect_limit: int = WELL_KNOWN_REDIRECT_LIMIT,
    ) -> Answer:
        """Fetch and parse the well-known document for ``domain``.

        Raises RecordNotFoundError on network errors, non-2xx responses,
        redirect chains longer than ``redirect_limit`` and unparsable bodies.
        """
        url = f"https://{domain}/.well-known/{schema}"
        current_url = url

        try:
            for hop in range(redirect_limit + 1):
                response = await self._client.get(
                    current_url, headers={"user-agent": self._user_agent}
                )

                if response.is_redirect and "location" in response.headers:
                    if hop == redirect_limit:
                        log.warning("well_known_redirect_limit", url=url, limit=redirect_limit)
                        raise RecordNotFoundError(
                            domain, f"Too many redirects fetching {url} (limit {redirect_limit})"
                        )
                    current_url = urljoin(current_url, response.headers["location"])
                    continue

                if not response.is_success:
                    log.info("well_known_http_error", url=url, status_code=response.status_code)
                    raise RecordNotFoundError(
                        domain, f"HTTP {response.status_code} fetching {url}"
                    )

                if self._cors_warning and CORS_HEADER not in response.headers:
                    log.warning(
                        "well_known_cors_missing",
                        url=current_url,
                        message=(
                            f"{current_url} does not send an Access-Control-Allow-Origin "
                            "header; browser clients will not be able to read it."
                        ),
                    )

                answer = parse_well_known(response.text, key_regex)
                if answer is None:
                    log.info("well_known_invalid", url=url)
                    raise RecordNotFoundError(domain, f"No valid key in {url}")

                log.debug("well_known_complete", url=url, ttl=answer.ttl)
                return answer

        except httpx.HTTPError as exc:
            log.info("well_known_network_error", url=url, error=str(exc))
            raise RecordNotFoundError(domain, f"Network error fetching {url}: {exc}") from exc

        # Unreachable but satisfies the type checker
        raise RecordNotFoundError(domain, f"Redirect loop fetching {url}")
