"""Protocol registry: key syntax and key-discovery rules per protocol.

Each protocol is a ProtocolHandler value (a schema plus two compiled
patterns) held by name in a ProtocolRegistry. New protocols are added with
``ProtocolRegistry.register``; handlers are never subclassed.

Every key pattern has exactly one job: its first capturing group is the key.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from hyperlookup.config import WELL_KNOWN_REDIRECT_LIMIT
from hyperlookup.errors import ArgumentError
from hyperlookup.models.registry import Answer

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from hyperlookup.protocols import ResolveContextProtocol

HEX_KEY = r"[0-9a-f]{64}"


def compile_pattern(pattern: str | re.Pattern[str], what: str) -> re.Pattern[str]:
    """Compile a user-supplied pattern, insisting on a capturing group for the key."""
    if isinstance(pattern, re.Pattern):
        compiled = pattern
    else:
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as exc:
            raise ArgumentError(f"Invalid {what} {pattern!r}: {exc}") from exc
    if compiled.groups < 1:
        raise ArgumentError(
            f"Invalid {what} {compiled.pattern!r}: it needs a capturing group for the key",
            suggestion="Wrap the key part of the pattern in parentheses.",
        )
    return compiled


def build_key_regex(schema: str, key: str = HEX_KEY, *, did: bool = False) -> re.Pattern[str]:
    """Raw-key form, optionally prefixed with ``schema:``/``schema://`` (or ``did:schema:``)."""
    schema = re.escape(schema)
    prefix = rf"did:{schema}:" if did else rf"{schema}:(?://)?"
    return re.compile(rf"^(?:{prefix})?({key})$", re.IGNORECASE)


def build_txt_regex(
    schema: str,
    key: str = HEX_KEY,
    *,
    did: bool = False,
    txt_names: Iterable[str] | None = None,
) -> re.Pattern[str]:
    """TXT record form: ``<schema>key=<key>`` or, for DID protocols, ``did:<schema>:<key>``.

    Anchored on both sides so a valid key embedded in a longer value never matches.
    """
    if did:
        body = rf"did:{re.escape(schema)}:"
    else:
        names = list(txt_names) if txt_names else [f"{schema}key"]
        body = "(?:" + "|".join(re.escape(name) for name in names) + ")="
    return re.compile(rf'^\s*"?{body}({key})"?\s*$', re.IGNORECASE)


@dataclass(frozen=True)
class ProtocolHandler:
    schema: str
    key_regex: re.Pattern[str]
    txt_regex: re.Pattern[str]
    did: bool = False

    @classmethod
    def create(
        cls,
        schema: str,
        key: str = HEX_KEY,
        *,
        did: bool = False,
        txt_names: Iterable[str] | None = None,
    ) -> ProtocolHandler:
        return cls(
            schema=schema,
            key_regex=build_key_regex(schema, key, did=did),
            txt_regex=build_txt_regex(schema, key, did=did, txt_names=txt_names),
            did=did,
        )

    def with_patterns(
        self,
        key_regex: str | re.Pattern[str] | None = None,
        txt_regex: str | re.Pattern[str] | None = None,
    ) -> ProtocolHandler:
        """Copy of this handler with overridden patterns. Raises ArgumentError."""
        changes: dict[str, re.Pattern[str]] = {}
        if key_regex is not None:
            changes["key_regex"] = compile_pattern(key_regex, "key_regex")
        if txt_regex is not None:
            changes["txt_regex"] = compile_pattern(txt_regex, "txt_regex")
        return replace(self, **changes) if changes else self

    def match_key(self, name: str) -> str | None:
        """Return the key if ``name`` already is one in this protocol's syntax."""
        match = self.key_regex.match(name)
        if match is None:
            return None
        return match.group(1)

    async def resolve(self, context: ResolveContextProtocol, name: str) -> Answer | None:
        """Find the key for ``name``: raw key, then DNS TXT, then the well-known document.

        Returns None when DNS has no record and the well-known lookup is disabled.
        Failures of the well-known lookup propagate.
        """
        key = self.match_key(name)
        if key is not None:
            return Answer(key=key, ttl=None)

        answer = await context.get_dns_txt_record(name, self.txt_regex)
        if answer is not None:
            return answer

        if context.no_well_known:
            return None

        return await context.fetch_well_known(
            name, self.schema, self.key_regex, WELL_KNOWN_REDIRECT_LIMIT
        )


class ProtocolRegistry:
    """Named set of protocol handlers."""

    def __init__(self, handlers: Iterable[ProtocolHandler] = ()) -> None:
        self._handlers: dict[str, ProtocolHandler] = {}
        for handler in handlers:
            self.register(handler)

    def register(self, handler: ProtocolHandler) -> ProtocolHandler:
        """Add (or replace) the handler for ``handler.schema``."""
        if not handler.schema or not re.fullmatch(r"[a-z][a-z0-9+.-]*", handler.schema):
            raise ArgumentError(f"Invalid protocol schema: {handler.schema!r}")
        self._handlers[handler.schema] = handler
        return handler

    def get(self, schema: str) -> ProtocolHandler:
        handler = self._handlers.get(schema.rstrip(":"))
        if handler is None:
            raise ArgumentError(
                f"Unknown protocol: {schema!r}",
                suggestion=f"Known protocols: {', '.join(sorted(self._handlers))}",
            )
        return handler

    def __contains__(self, schema: object) -> bool:
        return schema in self._handlers

    def __iter__(self) -> Iterator[ProtocolHandler]:
        return iter(self._handlers.values())

    @property
    def schemas(self) -> list[str]:
        return list(self._handlers)


def default_registry() -> ProtocolRegistry:
    """A fresh registry holding the built-in protocols."""
    return ProtocolRegistry(
        [
            ProtocolHandler.create("hyper", txt_names=["hyperkey", "datkey"]),
            ProtocolHandler.create("dat"),
            ProtocolHandler.create("cabal"),
            ProtocolHandler.create("ara", did=True),
        ]
    )
