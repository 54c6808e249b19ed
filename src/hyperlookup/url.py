"""URL model for peer-to-peer protocol URLs.

Protocol URLs look like ordinary URLs with one addition: the host may carry a
version segment, ``hyper://example.com+1234/path``. ``urllib.parse`` would fold
the version into the hostname (and reject ports it considers invalid), so the
authority is split with a dedicated pattern instead.

Parsing is pure: no lookups, no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from hyperlookup.errors import ArgumentError

_URL_RE = re.compile(
    r"^(?:(?P<protocol>[a-z][a-z0-9+.-]*:)//)?"
    r"(?:(?P<username>[^:@/?#]*)(?::(?P<password>[^@/?#]*))?@)?"
    r"(?P<hostname>[^+:/?#@]*)"
    r"(?:\+(?P<version>[^:/?#]*))?"
    r"(?::(?P<port>[^/?#]*))?"
    r"(?P<pathname>/[^?#]*)?"
    r"(?P<search>\?[^#]*)?"
    r"(?P<hash>#.*)?$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class HyperURL:
    """A parsed protocol URL whose hostname may later be replaced by a key.

    ``protocol`` keeps its trailing colon (``"hyper:"``); ``search`` and
    ``hash`` keep their leading ``?`` / ``#``. Absent parts are empty strings.
    """

    protocol: str = ""
    username: str = ""
    password: str = ""
    hostname: str = ""
    version: str = ""
    port: str = ""
    pathname: str = ""
    search: str = ""
    hash: str = ""

    @classmethod
    def parse(cls, url: str, default_protocol: str | None = None) -> HyperURL:
        """Parse ``url``; bare names get ``default_protocol`` (e.g. ``"hyper"``)."""
        match = _URL_RE.match(url.strip())
        if match is None:
            raise ArgumentError(f"Unparsable URL: {url!r}")

        parts = {key: value or "" for key, value in match.groupdict().items()}

        if not parts["hostname"]:
            raise ArgumentError(f"URL has no host: {url!r}")
        if match.group("version") is not None and not parts["version"]:
            raise ArgumentError(f"URL has an empty version segment: {url!r}")
        if match.group("port") is not None and not parts["port"].isdigit():
            raise ArgumentError(f"URL has an invalid port {parts['port']!r}: {url!r}")

        protocol = parts["protocol"].lower()
        if not protocol and default_protocol:
            protocol = default_protocol.rstrip(":") + ":"

        return cls(
            protocol=protocol,
            username=parts["username"],
            password=parts["password"],
            hostname=parts["hostname"],
            version=parts["version"],
            port=parts["port"],
            pathname=parts["pathname"],
            search=parts["search"],
            hash=parts["hash"],
        )

    @property
    def schema(self) -> str:
        """Protocol name without the trailing colon."""
        return self.protocol.rstrip(":")

    @property
    def host(self) -> str:
        host = self.hostname
        if self.version:
            host += f"+{self.version}"
        if self.port:
            host += f":{self.port}"
        return host

    def with_hostname(self, hostname: str) -> HyperURL:
        return replace(self, hostname=hostname)

    def __str__(self) -> str:
        out = f"{self.protocol}//" if self.protocol else ""
        if self.username or self.password:
            out += self.username
            if self.password:
                out += f":{self.password}"
            out += "@"
        return f"{out}{self.host}{self.pathname}{self.search}{self.hash}"
