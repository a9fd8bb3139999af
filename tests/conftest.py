from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from fixtures_net.fakes import FakePeer
from fixtures_net.servers import EchoServer, RelayServer, ThreadedEchoServer

from wiretalk.config import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings(host="127.0.0.1", connect_timeout=2.0, close_timeout=0.5, encoding="utf-8")


@pytest.fixture
def peer() -> FakePeer:
    return FakePeer()


@pytest_asyncio.fixture
async def echo_server() -> AsyncIterator[EchoServer]:
    echo = await EchoServer().start()
    try:
        yield echo
    finally:
        assert echo.server is not None
        echo.server.close()


@pytest_asyncio.fixture
async def relay_server() -> AsyncIterator[RelayServer]:
    relay = await RelayServer().start()
    try:
        yield relay
    finally:
        assert relay.server is not None
        relay.server.close()


@pytest.fixture
def threaded_echo_server() -> Iterator[ThreadedEchoServer]:
    with ThreadedEchoServer() as server:
        yield server
