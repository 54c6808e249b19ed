from __future__ import annotations

from hyperlookup.models.cache import CacheEntry
from hyperlookup.models.registry import Answer

__all__ = [
    # registry
    "Answer",
    # cache
    "CacheEntry",
]
