from __future__ import annotations

import re

import pytest

from wiretalk.errors import ConfigurationError, ExpectationMismatch
from wiretalk.operations import (
    Call,
    Disconnect,
    Drop,
    Receive,
    Send,
    Wait,
    check,
    describe,
    matches,
    validate_drop_count,
    validate_wait,
)


@pytest.mark.parametrize(
    ("expected", "actual", "result"),
    [
        ("PING", "PING", True),
        ("PING", "PONG", False),
        (b"PING", b"PING", True),
        ("PING", b"PING", True),
        (b"PING", "PING", True),
        (re.compile(r"^PI"), "PING", True),
        (re.compile(r"^PO"), "PING", False),
        (re.compile(rb"\d+"), b"id=42", True),
        (lambda chunk: len(chunk) == 4, "PING", True),
        (lambda chunk: chunk.startswith("X"), "PING", False),
    ],
)
def test_matches(expected, actual, result) -> None:
    assert matches(expected, actual) is result


@pytest.mark.parametrize(
    ("expected", "actual"),
    [
        (b"caf\xe9", "caf\u00e9"),
        ("caf\u00e9", b"caf\xe9"),
        (re.compile(rb"\xe9$"), "caf\u00e9"),
    ],
)
def test_matches_converts_with_given_encoding(expected, actual) -> None:
    assert matches(expected, actual, "latin-1")
    assert not matches(expected, actual)
    check(expected, actual, encoding="latin-1")


def test_matches_rejects_unsupported_expectations() -> None:
    with pytest.raises(ConfigurationError):
        matches(42, "42")  # type: ignore[arg-type]


def test_check_raises_assertion_compatible_mismatch() -> None:
    with pytest.raises(AssertionError) as excinfo:
        check("PING", "PONG")

    error = excinfo.value
    assert isinstance(error, ExpectationMismatch)
    assert error.expected == "PING"
    assert error.actual == "PONG"
    assert "PING" in str(error)


def test_check_reports_pattern_and_predicate_names() -> None:
    with pytest.raises(ExpectationMismatch, match="matching"):
        check(re.compile("^A"), "B")

    def is_ack(chunk: str) -> bool:
        return chunk == "ACK"

    with pytest.raises(ExpectationMismatch, match="is_ack"):
        check(is_ack, "NAK")


def test_predicate_errors_propagate() -> None:
    def explode(_chunk: str) -> bool:
        raise ValueError("bad frame")

    with pytest.raises(ValueError, match="bad frame"):
        check(explode, "x")


def test_drop_count_validation() -> None:
    assert validate_drop_count(None) is None
    assert validate_drop_count(3) == 3
    for bad in (0, -1, True, 1.5):
        with pytest.raises(ConfigurationError):
            validate_drop_count(bad)  # type: ignore[arg-type]


def test_wait_validation() -> None:
    assert validate_wait(0) == 0
    assert validate_wait(12.5) == 12.5
    with pytest.raises(ConfigurationError):
        validate_wait(-1)


def test_describe_names_each_kind() -> None:
    assert describe(Send("a", "hi")) == "send target=a payload='hi'"
    assert describe(Receive("a", re.compile("x"))).startswith("expect target=a")
    assert describe(Wait(5)) == "wait ms=5"
    assert describe(Disconnect("a")) == "disconnect target=a"
    assert describe(Drop("a")) == "drop target=a count=all"
    assert describe(Drop("a", 2)) == "drop target=a count=2"

    def ping() -> None:
        return None

    assert describe(Call(ping)) == "call callback=ping"


def test_operations_are_immutable() -> None:
    operation = Send("a", "hi")
    with pytest.raises(AttributeError):
        operation.payload = "other"  # type: ignore[misc]
