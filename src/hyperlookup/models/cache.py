from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CacheEntry(BaseModel):
    """Resolved keys for a single name, shared by the in-memory and persistent caches.

    Strict so that whatever a persistent cache hands back is rejected rather
    than coerced: ``"12"`` is not an expiry and ``None`` is not a key map.
    """

    model_config = ConfigDict(strict=True, frozen=True)

    name: str
    # protocol → key; None records a known negative answer
    keys: dict[str, str | None]
    expires: float = Field(allow_inf_nan=False)  # epoch milliseconds

    def is_fresh(self, now_ms: float) -> bool:
        return self.expires > now_ms
