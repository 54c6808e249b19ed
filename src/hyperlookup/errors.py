from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FQDN = "NOT_FQDN"
    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    ABORTED = "ABORTED"


class HyperLookupError(Exception):
    """Base class for every failure a lookup can report to its caller.

    Infrastructure problems (an unreachable DoH provider, a broken persistent
    cache) are handled inside the library and never reach this type; what
    does reach the caller is one of the subclasses below.
    """

    code: ErrorCode = ErrorCode.INVALID_ARGUMENT

    def __init__(self, message: str, suggestion: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
            }
        }


class ArgumentError(HyperLookupError):
    """Malformed configuration or malformed input."""

    code = ErrorCode.INVALID_ARGUMENT


class NotFQDNError(ArgumentError):
    """The name is neither a valid key nor a fully-qualified domain."""

    code = ErrorCode.NOT_FQDN

    def __init__(self, name: str) -> None:
        super().__init__(
            f"{name!r} is neither a key nor a fully-qualified domain name",
            suggestion="Pass a raw key or a domain such as 'example.com'.",
        )
        self.name = name


class RecordNotFoundError(HyperLookupError):
    """Every resolution path was exhausted without a usable answer."""

    code = ErrorCode.RECORD_NOT_FOUND

    def __init__(self, name: str, message: str | None = None) -> None:
        super().__init__(
            message or f"No record found for {name!r}",
            suggestion="Check the domain's TXT records or its .well-known document.",
        )
        self.name = name


class AbortedError(HyperLookupError):
    """The abort signal of a resolution fired before it finished."""

    code = ErrorCode.ABORTED

    def __init__(self, name: str) -> None:
        super().__init__(f"Resolution of {name!r} was aborted")
        self.name = name
