"""Constants and stand-ins shared across the test suite."""

from __future__ import annotations

import httpx

from hyperlookup.config import LookupSettings

DOH_URL = "https://doh.test/query"
DOH_BACKUP_URL = "https://doh-backup.test/resolve"

TEST_KEY = "100c77d788fdaf07b89b28e9d276e47f2e44011f4adb981921056e1b3b40e99e"
# Ascending order: TEST_KEYS[2] is the largest.
TEST_KEYS = [
    "14bc77d788fdaf07b89b28e9d276e47f2e44011f4adb981921056e1b3b40e99e",
    "5a2b77d788fdaf07b89b28e9d276e47f2e44011f4adb981921056e1b3b40e99e",
    "ee0a77d788fdaf07b89b28e9d276e47f2e44011f4adb981921056e1b3b40e99e",
]


class StubSystemResolver:
    """System resolver stand-in that never touches real DNS."""

    def __init__(self, texts: list[str] | None = None) -> None:
        self.texts = texts or []
        self.calls: list[str] = []

    async def resolve_txt(self, domain: str) -> list[str]:
        self.calls.append(domain)
        return list(self.texts)


def doh_answer(*records: object) -> httpx.Response:
    """A DoH JSON response carrying ``records`` as its Answer section."""
    return httpx.Response(200, json={"Status": 0, "Answer": list(records)})


def make_settings(**overrides: object) -> LookupSettings:
    values: dict[str, object] = {"doh_lookups": [DOH_URL], "no_well_known": True}
    values.update(overrides)
    return LookupSettings(**values)
