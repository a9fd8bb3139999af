"""Named TCP connections that buffer incoming chunks for the plan."""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, TypeAlias

from loguru import logger

from wiretalk.config import Settings
from wiretalk.errors import ConfigurationError, ConnectionClosedError, TransportError
from wiretalk.operations import Chunk, Payload

Initializer: TypeAlias = Callable[["Connection"], Awaitable[None] | None]
CloseListener: TypeAlias = Callable[["Connection"], None]
ErrorListener: TypeAlias = Callable[["Connection", BaseException], None]


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class ConnectionConfig:
    """How one connection gets established: a port, or an initializer."""

    port: int | None = None
    host: str | None = None
    initializer: Initializer | None = None

    @classmethod
    def coerce(cls, value: Any) -> ConnectionConfig | None:
        """Normalize a port number, initializer, mapping or config to a config."""

        if value is None or isinstance(value, ConnectionConfig):
            return value
        if isinstance(value, bool):
            raise ConfigurationError(f"unsupported connection configuration: {value!r}")
        if isinstance(value, int):
            return cls(port=value)
        if isinstance(value, Mapping):
            return cls(**value)
        if callable(value):
            return cls(initializer=value)
        raise ConfigurationError(f"unsupported connection configuration: {value!r}")


class _ChunkProtocol(asyncio.Protocol):
    """Forward transport events to the owning connection."""

    def __init__(self, connection: Connection) -> None:
        self._connection = connection

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self._connection._on_connect(transport)

    def data_received(self, data: bytes) -> None:
        self._connection._on_data(data)

    def connection_lost(self, exc: Exception | None) -> None:
        self._connection._on_lost(exc)


class Connection:
    """One live byte-stream endpoint participating in a conversation.

    Received chunks are buffered until the plan asks for them, and requests
    for the next chunk wait until one arrives. At any time either the buffer
    or the queue of waiting consumers is empty.
    """

    def __init__(
        self,
        name: str,
        *,
        config: ConnectionConfig | None = None,
        encoding: str | None = "utf-8",
        on_close: CloseListener | None = None,
        on_error: ErrorListener | None = None,
    ) -> None:
        self.name = name
        self.config = config
        self.encoding = encoding
        self.state = ConnectionState.CONNECTING
        self.transport: asyncio.Transport | None = None
        self._received: deque[Chunk] = deque()
        self._waiters: deque[asyncio.Future[Chunk]] = deque()
        self._connected = asyncio.Event()
        self._lost = asyncio.Event()
        self._on_close = on_close
        self._on_error = on_error
        self._detached = False
        self._pending_drop = 0

    def __repr__(self) -> str:
        return f"Connection(name={self.name!r}, state={self.state.value})"

    @property
    def buffered(self) -> int:
        return len(self._received)

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    def protocol_factory(self) -> asyncio.Protocol:
        """Protocol factory for callers that create the transport themselves."""

        return _ChunkProtocol(self)

    async def open(self, default: ConnectionConfig | None, settings: Settings) -> None:
        """Establish the transport from this connection's config or the shared default.

        Precedence: own initializer, own port, default initializer, default port.
        """

        initializer, host, port = self._resolve(default)
        if initializer is None and port is None:
            raise ConfigurationError(f"no feasible way to initialize connection {self.name!r}")

        try:
            async with asyncio.timeout(settings.connect_timeout):
                if initializer is not None:
                    result = initializer(self)
                    if inspect.isawaitable(result):
                        await result
                    await self._connected.wait()
                else:
                    await self.attach(host=host or settings.host, port=port)
        except TimeoutError as exc:
            raise TransportError(
                f"connection {self.name!r} did not establish within {settings.connect_timeout}s"
            ) from exc
        except OSError as exc:
            raise TransportError(f"connection {self.name!r} failed to establish: {exc}") from exc
        logger.debug("connection.open name={} peer={}", self.name, self.peername)

    async def attach(self, **kwargs: Any) -> asyncio.Transport:
        """Create the transport with ``loop.create_connection`` keyword arguments."""

        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_connection(self.protocol_factory, **kwargs)
        return transport

    @property
    def peername(self) -> Any:
        if self.transport is None:
            return None
        return self.transport.get_extra_info("peername")

    def write(self, payload: Payload) -> None:
        if self.state is not ConnectionState.OPEN or self.transport is None:
            raise TransportError(f"connection {self.name!r} is not open")
        data = payload.encode(self.encoding or "utf-8") if isinstance(payload, str) else bytes(payload)
        self.transport.write(data)

    async def next_chunk(self) -> Chunk:
        if self._received:
            return self._received.popleft()
        if self.state is ConnectionState.CLOSED:
            raise ConnectionClosedError(f"connection {self.name!r} is closed")
        waiter: asyncio.Future[Chunk] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        return await waiter

    def discard(self, count: int | None = None) -> int:
        """Drop buffered chunks from the front and return how many went.

        With a ``count`` larger than the buffer, the remainder is skipped as
        chunks arrive, unless a consumer is already waiting. Without a count
        only what is buffered now is dropped.
        """

        dropped = len(self._received) if count is None else min(count, len(self._received))
        for _ in range(dropped):
            self._received.popleft()
        if count is not None and self.waiting == 0:
            self._pending_drop += count - dropped
        return dropped

    @property
    def pending_drop(self) -> int:
        return self._pending_drop

    def close(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        if self.transport is not None:
            self.transport.close()
        else:
            self._lost.set()
        self._fail_waiters(ConnectionClosedError(f"connection {self.name!r} was closed"))
        self._detach()

    async def wait_closed(self) -> None:
        await self._lost.wait()

    def _on_connect(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]
        if self.state is ConnectionState.CLOSED:
            transport.close()
            return
        self.state = ConnectionState.OPEN
        self._connected.set()

    def _on_data(self, data: bytes) -> None:
        chunk: Chunk = data.decode(self.encoding, errors="replace") if self.encoding else data
        logger.trace("connection.data name={} size={}", self.name, len(data))
        if self._pending_drop:
            self._pending_drop -= 1
            logger.trace("connection.skipped name={} remaining={}", self.name, self._pending_drop)
            return
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(chunk)
                return
        self._received.append(chunk)

    def _on_lost(self, exc: Exception | None) -> None:
        self.state = ConnectionState.CLOSED
        self._lost.set()
        if exc is not None:
            error = TransportError(f"connection {self.name!r} failed: {exc}")
            error.__cause__ = exc
            logger.warning("connection.error name={} error={}", self.name, exc)
            self._fail_waiters(error)
            if self._on_error is not None:
                self._on_error(self, error)
        else:
            logger.debug("connection.closed name={}", self.name)
            self._fail_waiters(ConnectionClosedError(f"connection {self.name!r} was closed by the peer"))
        self._detach()

    def _fail_waiters(self, error: BaseException) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_exception(error)

    def _detach(self) -> None:
        if self._detached:
            return
        self._detached = True
        if self._on_close is not None:
            self._on_close(self)

    def _resolve(self, default: ConnectionConfig | None) -> tuple[Initializer | None, str | None, int | None]:
        own = self.config or ConnectionConfig()
        shared = default or ConnectionConfig()
        if own.initializer is not None:
            return own.initializer, None, None
        if own.port is not None:
            return None, own.host or shared.host, own.port
        if shared.initializer is not None:
            return shared.initializer, None, None
        return None, own.host or shared.host, shared.port
