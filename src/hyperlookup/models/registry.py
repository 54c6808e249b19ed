from __future__ import annotations

from pydantic import BaseModel


class Answer(BaseModel):
    """A key found for a name by one resolution path."""

    key: str
    ttl: float | None = None  # seconds; None → caller applies the configured default
