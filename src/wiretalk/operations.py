"""Plan operations and expectation matching."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeAlias

from wiretalk.errors import ConfigurationError, ExpectationMismatch

Payload: TypeAlias = str | bytes
Chunk: TypeAlias = str | bytes
Predicate: TypeAlias = Callable[[Chunk], bool]
Expectation: TypeAlias = str | bytes | re.Pattern[str] | re.Pattern[bytes] | Predicate
Callback: TypeAlias = Callable[[], Awaitable[Any] | Any]


@dataclass(frozen=True)
class Send:
    """Write a payload from one connection."""

    target: str
    payload: Payload


@dataclass(frozen=True)
class Receive:
    """Wait for the next chunk on one connection and check it."""

    target: str
    expectation: Expectation


@dataclass(frozen=True)
class Wait:
    """Pause the plan for a number of milliseconds."""

    duration_ms: float


@dataclass(frozen=True)
class Call:
    """Run a callback; awaitable results are awaited before moving on."""

    callback: Callback


@dataclass(frozen=True)
class Disconnect:
    """Close one connection."""

    target: str


@dataclass(frozen=True)
class Drop:
    """Discard buffered chunks on one connection. ``count=None`` drops all of them."""

    target: str
    count: int | None = None


Operation: TypeAlias = Send | Receive | Wait | Call | Disconnect | Drop


def validate_drop_count(count: int | None) -> int | None:
    if count is None:
        return None
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise ConfigurationError(f"drop count must be a positive integer or None, got {count!r}")
    return count


def validate_wait(duration_ms: float) -> float:
    if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)) or duration_ms < 0:
        raise ConfigurationError(f"wait duration must be a non-negative number of milliseconds, got {duration_ms!r}")
    return duration_ms


def matches(expected: Expectation, actual: Chunk, encoding: str = "utf-8") -> bool:
    """Return whether ``actual`` satisfies ``expected``.

    Literals compare by equality after bringing both sides to the same type,
    patterns use ``search`` and callables are treated as predicates. A
    predicate may raise to report its own failure. ``encoding`` converts
    between text and bytes when the two sides differ.
    """

    if isinstance(expected, re.Pattern):
        subject = _coerce_like(expected.pattern, actual, encoding)
        return expected.search(subject) is not None
    if isinstance(expected, (str, bytes)):
        return _coerce_like(expected, actual, encoding) == expected
    if callable(expected):
        return bool(expected(actual))
    raise ConfigurationError(f"unsupported expectation type: {type(expected).__name__}")


def check(expected: Expectation, actual: Chunk, encoding: str = "utf-8") -> None:
    """Raise ``ExpectationMismatch`` unless ``actual`` satisfies ``expected``."""

    if matches(expected, actual, encoding):
        return
    if isinstance(expected, re.Pattern):
        raise ExpectationMismatch(expected, actual, f"expected a chunk matching {expected.pattern!r}, received {actual!r}")
    if callable(expected) and not isinstance(expected, (str, bytes)):
        name = getattr(expected, "__name__", repr(expected))
        raise ExpectationMismatch(expected, actual, f"predicate {name} rejected {actual!r}")
    raise ExpectationMismatch(expected, actual)


def describe(operation: Operation) -> str:
    """Short human-readable form used in log lines."""

    match operation:
        case Send(target=target, payload=payload):
            return f"send target={target} payload={payload!r}"
        case Receive(target=target, expectation=expectation):
            return f"expect target={target} expectation={_describe_expectation(expectation)}"
        case Wait(duration_ms=duration_ms):
            return f"wait ms={duration_ms}"
        case Call(callback=callback):
            return f"call callback={getattr(callback, '__name__', repr(callback))}"
        case Disconnect(target=target):
            return f"disconnect target={target}"
        case Drop(target=target, count=count):
            return f"drop target={target} count={'all' if count is None else count}"
    return repr(operation)


def _describe_expectation(expectation: Expectation) -> str:
    if isinstance(expectation, re.Pattern):
        return f"/{expectation.pattern!r}/"
    if isinstance(expectation, (str, bytes)):
        return repr(expectation)
    return getattr(expectation, "__name__", repr(expectation))


def _coerce_like(reference: str | bytes, value: Chunk, encoding: str) -> Chunk:
    if isinstance(reference, bytes) and isinstance(value, str):
        return value.encode(encoding, errors="replace")
    if isinstance(reference, str) and isinstance(value, bytes):
        return value.decode(encoding, errors="replace")
    return value
