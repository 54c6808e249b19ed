"""hyperlookup: resolve domain names to hyper, dat, cabal and ara keys."""

from __future__ import annotations

import warnings
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hyperlookup")
except PackageNotFoundError:
    # Source-tree execution without installed package metadata.
    warnings.warn(
        "Package metadata for 'hyperlookup' not found; using fallback version '0.0.0+unknown'.",
        RuntimeWarning,
        stacklevel=2,
    )
    __version__ = "0.0.0+unknown"

from hyperlookup.cache import SQLiteCache  # noqa: E402
from hyperlookup.cached import HyperCachedLookup  # noqa: E402
from hyperlookup.errors import (  # noqa: E402
    AbortedError,
    ArgumentError,
    HyperLookupError,
    NotFQDNError,
    RecordNotFoundError,
)
from hyperlookup.lookup import HyperLookup  # noqa: E402
from hyperlookup.registry import ProtocolHandler, ProtocolRegistry, default_registry  # noqa: E402
from hyperlookup.url import HyperURL  # noqa: E402

__all__ = [
    "AbortedError",
    "ArgumentError",
    "HyperCachedLookup",
    "HyperLookup",
    "HyperLookupError",
    "HyperURL",
    "NotFQDNError",
    "ProtocolHandler",
    "ProtocolRegistry",
    "RecordNotFoundError",
    "SQLiteCache",
    "default_registry",
]
