from __future__ import annotations

import asyncio
import re

import pytest
from fixtures_net.servers import EchoServer, RelayServer

from wiretalk import Conversation
from wiretalk.config import Settings
from wiretalk.connection import ConnectionConfig, ConnectionState
from wiretalk.errors import ExpectationMismatch, TransportError


@pytest.mark.asyncio
async def test_ping_pong_between_two_connections(relay_server: RelayServer, settings: Settings) -> None:
    conversation = Conversation(relay_server.port, settings=settings).client("client").client("server")
    client = conversation.connections["client"]
    server = conversation.connections["server"]
    successes: list[BaseException | None] = []
    conversation.on_success(successes.append)

    conversation.connection("client").send("PING")
    conversation.connection("server").expect("PING")
    conversation.connection("server").send("PONG")
    conversation.connection("client").expect("PONG")
    conversation.connection("client").disconnect()

    assert await conversation.run() is None
    assert successes == [None]
    assert client.state is ConnectionState.CLOSED
    assert server.state is ConnectionState.CLOSED


@pytest.mark.asyncio
async def test_same_connection_writes_arrive_in_order(echo_server: EchoServer, settings: Settings) -> None:
    conversation = (
        Conversation(echo_server.port, settings=settings)
        .client("c")
        .send("c", "A")
        .send("c", "B")
        .expect("c", re.compile(r"^A"))
        .wait(50)
    )

    assert await conversation.run() is None
    assert b"".join(echo_server.received) == b"AB"


@pytest.mark.asyncio
async def test_pre_send_hook_changes_bytes_on_the_wire(echo_server: EchoServer, settings: Settings) -> None:
    conversation = (
        Conversation(echo_server.port, settings=settings)
        .client("c")
        .pre_send(lambda payload: payload.upper())
        .send("c", "hello")
        .expect("c", "HELLO")
    )

    assert await conversation.run() is None
    assert echo_server.received == [b"HELLO"]


@pytest.mark.asyncio
async def test_echo_mismatch_is_reported(echo_server: EchoServer, settings: Settings) -> None:
    conversation = Conversation(echo_server.port, settings=settings).client("c").send("c", "one").expect("c", "two")

    error = await conversation.run()

    assert isinstance(error, ExpectationMismatch)
    assert error.actual == "one"


@pytest.mark.asyncio
async def test_bytes_mode_over_tcp(echo_server: EchoServer, settings: Settings) -> None:
    conversation = (
        Conversation(echo_server.port, encoding=None, settings=settings)
        .client("c")
        .send("c", b"\x00\x01")
        .expect("c", b"\x00\x01")
    )

    assert await conversation.run() is None


@pytest.mark.asyncio
async def test_per_connection_port_overrides_default(echo_server: EchoServer, settings: Settings) -> None:
    conversation = (
        Conversation(1, settings=settings)
        .client("c", ConnectionConfig(port=echo_server.port, host="127.0.0.1"))
        .send("c", "x")
        .expect("c", "x")
    )

    assert await conversation.run() is None


@pytest.mark.asyncio
async def test_initializer_can_attach_the_transport(echo_server: EchoServer, settings: Settings) -> None:
    async def initializer(connection) -> None:
        await connection.attach(host="127.0.0.1", port=echo_server.port)

    conversation = Conversation(settings=settings).client("c", initializer).send("c", "hi").expect("c", "hi")

    assert await conversation.run() is None


@pytest.mark.asyncio
async def test_refused_connection_fails_the_run(settings: Settings) -> None:
    server = await asyncio.start_server(lambda _reader, _writer: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    failures: list[BaseException | None] = []

    conversation = Conversation(port, settings=settings).client("c").send("c", "x").on_failure(failures.append)
    error = await conversation.run()

    assert isinstance(error, TransportError)
    assert failures == [error]
