"""Unit tests for hyperlookup.errors."""

from __future__ import annotations

from hyperlookup.errors import (
    AbortedError,
    ArgumentError,
    ErrorCode,
    HyperLookupError,
    NotFQDNError,
    RecordNotFoundError,
)


def test_not_fqdn_is_an_argument_error() -> None:
    exc = NotFQDNError("hello")
    assert isinstance(exc, ArgumentError)
    assert exc.code is ErrorCode.NOT_FQDN
    assert exc.name == "hello"


def test_codes() -> None:
    assert ArgumentError("bad").code is ErrorCode.INVALID_ARGUMENT
    assert RecordNotFoundError("a.com").code is ErrorCode.RECORD_NOT_FOUND
    assert AbortedError("a.com").code is ErrorCode.ABORTED


def test_record_not_found_custom_message() -> None:
    exc = RecordNotFoundError("a.com", "Too many redirects")
    assert exc.message == "Too many redirects"
    assert str(exc) == "Too many redirects"


def test_to_dict() -> None:
    exc = HyperLookupError("boom", suggestion="try again")
    assert exc.to_dict() == {
        "error": {
            "code": ErrorCode.INVALID_ARGUMENT,
            "message": "boom",
            "suggestion": "try again",
        }
    }
