"""Fluent façade for declaring and running a scripted conversation."""

from __future__ import annotations

import asyncio
from typing import Any

from wiretalk.broadcast import BroadcastView
from wiretalk.config import Settings, get_settings
from wiretalk.connection import Connection, ConnectionConfig, Initializer
from wiretalk.engine import EngineState, OperationQueue, TerminalHandler, TerminalHandlers
from wiretalk.errors import ConfigurationError, ConnectionLookupError, ConversationStateError
from wiretalk.hooks import HookPipeline, OperationHook, ReceiveHook, SendHook
from wiretalk.operations import (
    Call,
    Callback,
    Disconnect,
    Drop,
    Expectation,
    Operation,
    Payload,
    Receive,
    Send,
    Wait,
    validate_drop_count,
    validate_wait,
)

_UNSET: Any = object()


class Conversation:
    """A set of named connections plus the ordered plan they act out.

    Build the plan with chained calls, then ``await conversation.run()``.
    Operations naming a connection that is unknown when the step runs fail
    the run with ``ConnectionLookupError``. When the connection name is
    omitted, the most recently referenced connection is used, or the only
    registered one.
    """

    def __init__(
        self,
        port: int | None = None,
        *,
        host: str | None = None,
        initializer: Initializer | None = None,
        encoding: str | None = _UNSET,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.encoding: str | None = self.settings.encoding if encoding is _UNSET else encoding
        self.default: ConnectionConfig | None = None
        if port is not None or host is not None or initializer is not None:
            self.default = ConnectionConfig(port=port, host=host, initializer=initializer)
        self.connections: dict[str, Connection] = {}
        self.hooks = HookPipeline()
        self.handlers = TerminalHandlers()
        self._engine = OperationQueue(
            self.connections,
            settings=self.settings,
            default=self.default,
            hooks=self.hooks,
            handlers=self.handlers,
        )
        self._last: str | None = None
        self.all = BroadcastView(self)

    @property
    def state(self) -> EngineState:
        return self._engine.state

    @property
    def error(self) -> BaseException | None:
        return self._engine.error

    @property
    def plan(self) -> list[Operation]:
        return list(self._engine.plan)

    def client(self, name: str, config: int | Initializer | ConnectionConfig | None = None) -> Conversation:
        """Register a connection, optionally with its own port or initializer."""

        if name in self.connections:
            raise ConfigurationError(f"a connection named {name!r} is already registered")
        self.connections[name] = Connection(
            name,
            config=ConnectionConfig.coerce(config),
            encoding=self.encoding,
            on_close=self._forget,
            on_error=self._transport_failed,
        )
        self._last = name
        return self

    register = client

    def connection(self, name: str) -> ConnectionView:
        """Return a view that adds operations for ``name``."""

        if name not in self.connections:
            raise ConnectionLookupError(name, f"connection {name!r} is not registered or has disconnected")
        self._last = name
        return ConnectionView(self, name)

    def send(self, name: str | Payload | None, payload: Payload | None = None) -> Conversation:
        if payload is None:
            name, payload = None, name
        self._engine.append(Send(self._target(name), payload))
        return self

    def expect(self, name: str | Expectation | None, expectation: Expectation | None = None) -> Conversation:
        if expectation is None:
            name, expectation = None, name
        self._engine.append(Receive(self._target(name), expectation))
        return self

    def wait(self, ms: float) -> Conversation:
        self._engine.append(Wait(validate_wait(ms)))
        return self

    def call(self, callback: Callback) -> Conversation:
        if not callable(callback):
            raise ConfigurationError(f"call() needs a callable, got {callback!r}")
        self._engine.append(Call(callback))
        return self

    def disconnect(self, name: str | None = None) -> Conversation:
        self._engine.append(Disconnect(self._target(name)))
        return self

    def drop(self, name: str | int | None = None, count: int | None = None) -> Conversation:
        if isinstance(name, int) and not isinstance(name, bool):
            name, count = None, name
        self._engine.append(Drop(self._target(name), validate_drop_count(count)))
        return self

    write = send
    read = expect
    then = call
    end = disconnect

    def on_success(self, callback: TerminalHandler) -> Conversation:
        self.handlers.success.append(callback)
        return self

    def on_failure(self, callback: TerminalHandler) -> Conversation:
        self.handlers.failure.append(callback)
        return self

    def on_done(self, callback: TerminalHandler) -> Conversation:
        self.handlers.done.append(callback)
        return self

    succeeded = on_success
    failed = on_failure
    finished = on_done

    def pre_send(self, hook: SendHook) -> Conversation:
        self.hooks.pre_send.append(hook)
        return self

    def pre_receive(self, hook: ReceiveHook) -> Conversation:
        self.hooks.pre_receive.append(hook)
        return self

    def pre_operation(self, hook: OperationHook) -> Conversation:
        self.hooks.pre_operation.append(hook)
        return self

    async def run(self, done: TerminalHandler | None = None) -> BaseException | None:
        """Run the plan once and return the terminal error, or None on success.

        Raises:
            ConversationStateError: If the conversation already ran.
        """

        if self._engine.state is not EngineState.IDLE:
            raise ConversationStateError("a conversation can only be run once")
        if done is not None:
            self.handlers.done.append(done)
        return await self._engine.run()

    def run_sync(self, done: TerminalHandler | None = None) -> BaseException | None:
        """Run the conversation on a fresh event loop."""

        return asyncio.run(self.run(done))

    def _target(self, name: str | None) -> str:
        if name is not None:
            self._last = name
            return name
        if self._last is not None:
            return self._last
        if len(self.connections) == 1:
            return next(iter(self.connections))
        raise ConfigurationError("cannot pick a default connection unless exactly one is registered")

    def _forget(self, connection: Connection) -> None:
        if self.connections.get(connection.name) is connection:
            del self.connections[connection.name]

    def _transport_failed(self, connection: Connection, error: BaseException) -> None:
        self._engine.fail(error)


class ConnectionView:
    """Plan-building calls bound to one named connection."""

    def __init__(self, conversation: Conversation, name: str) -> None:
        self.conversation = conversation
        self.name = name

    def __repr__(self) -> str:
        return f"ConnectionView(name={self.name!r})"

    @property
    def connection(self) -> Connection:
        connection = self.conversation.connections.get(self.name)
        if connection is None:
            raise ConnectionLookupError(self.name, f"connection {self.name!r} has disconnected")
        return connection

    def send(self, payload: Payload) -> Conversation:
        return self.conversation.send(self.name, payload)

    def expect(self, expectation: Expectation) -> Conversation:
        return self.conversation.expect(self.name, expectation)

    def disconnect(self) -> Conversation:
        return self.conversation.disconnect(self.name)

    def drop(self, count: int | None = None) -> Conversation:
        return self.conversation.drop(self.name, count)

    write = send
    read = expect
    end = disconnect
