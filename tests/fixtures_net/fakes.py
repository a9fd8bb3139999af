"""In-memory transports for driving connections without sockets."""

from __future__ import annotations

import asyncio
from typing import Any

from wiretalk.connection import Connection


class FakeTransport(asyncio.Transport):
    """Transport that records writes and reports closure on the next loop turn."""

    def __init__(self, protocol: asyncio.Protocol) -> None:
        super().__init__()
        self.protocol = protocol
        self.written: list[bytes] = []
        self.closed = False

    def write(self, data: bytes) -> None:
        self.written.append(bytes(data))

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        asyncio.get_running_loop().call_soon(self.protocol.connection_lost, None)

    def is_closing(self) -> bool:
        return self.closed

    def get_extra_info(self, name: str, default: Any = None) -> Any:
        if name == "peername":
            return ("fake", 0)
        return default


class FakePeer:
    """Connection initializer that wires a connection to a FakeTransport."""

    def __init__(self) -> None:
        self.protocol: asyncio.Protocol | None = None
        self.transport: FakeTransport | None = None

    async def __call__(self, connection: Connection) -> None:
        self.protocol = connection.protocol_factory()
        self.transport = FakeTransport(self.protocol)
        self.protocol.connection_made(self.transport)

    @property
    def written(self) -> bytes:
        return b"".join(self.writes)

    @property
    def writes(self) -> list[bytes]:
        if self.transport is None:
            return []
        return list(self.transport.written)

    @property
    def closed(self) -> bool:
        return self.transport is not None and self.transport.closed

    def feed(self, data: bytes) -> None:
        assert self.protocol is not None
        self.protocol.data_received(data)

    def hang_up(self) -> None:
        assert self.protocol is not None
        self.protocol.connection_lost(None)

    def fail(self, error: Exception) -> None:
        assert self.protocol is not None
        self.protocol.connection_lost(error)
