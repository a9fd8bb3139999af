"""Operation queue engine: establishes connections and drains the plan."""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from collections.abc import Awaitable, Callable, Iterable, Mapping
from enum import StrEnum
from typing import Any, TypeAlias

from loguru import logger

from wiretalk.barrier import CompletionBarrier
from wiretalk.config import Settings
from wiretalk.connection import Connection, ConnectionConfig
from wiretalk.errors import ConfigurationError, ConnectionLookupError, ConversationStateError
from wiretalk.hooks import HookPipeline
from wiretalk.operations import Call, Disconnect, Drop, Operation, Receive, Send, Wait, check, describe

TerminalHandler: TypeAlias = Callable[[BaseException | None], Awaitable[Any] | Any]


class EngineState(StrEnum):
    IDLE = "idle"
    ESTABLISHING = "establishing"
    DRAINING = "draining"
    DONE = "done"


class TerminalHandlers:
    """Success, failure and done callbacks fired once at the end of a run."""

    def __init__(self) -> None:
        self.success: list[TerminalHandler] = []
        self.failure: list[TerminalHandler] = []
        self.done: list[TerminalHandler] = []

    async def fire(self, error: BaseException | None) -> None:
        """Run every handler for the outcome, then the done handlers.

        A handler that raises does not stop the others. The first
        ``AssertionError`` is re-raised once all handlers have run.
        """

        outcome = self.failure if error is not None else self.success
        failed_assertion: AssertionError | None = None
        for handler in [*outcome, *self.done]:
            try:
                value = handler(error)
                if inspect.isawaitable(value):
                    await value
            except AssertionError as exc:
                if failed_assertion is None:
                    failed_assertion = exc
            except Exception:
                logger.opt(exception=True).warning(
                    "conversation.handler_failed handler={}",
                    getattr(handler, "__name__", repr(handler)),
                )
        if failed_assertion is not None:
            raise failed_assertion


class OperationQueue:
    """Drain an ordered plan of operations against named connections.

    One step runs at a time. The first error observed anywhere (connection
    setup, a step, a hook or the transport) ends the run; the handlers fire
    once and every connection still open is closed.
    """

    def __init__(
        self,
        connections: Mapping[str, Connection],
        *,
        settings: Settings,
        default: ConnectionConfig | None = None,
        hooks: HookPipeline | None = None,
        handlers: TerminalHandlers | None = None,
    ) -> None:
        self.connections = connections
        self.settings = settings
        self.default = default
        self.hooks = hooks or HookPipeline()
        self.handlers = handlers or TerminalHandlers()
        self.plan: deque[Operation] = deque()
        self.state = EngineState.IDLE
        self.error: BaseException | None = None
        self._barrier = CompletionBarrier()
        self._participants: list[Connection] = []
        self._step: asyncio.Task[None] | None = None

    def append(self, operation: Operation) -> None:
        if self.state is not EngineState.IDLE:
            raise ConversationStateError("operations cannot be added once the conversation has started")
        self.plan.append(operation)

    def extend(self, operations: Iterable[Operation]) -> None:
        for operation in operations:
            self.append(operation)

    def lookup(self, name: str) -> Connection:
        connection = self.connections.get(name)
        if connection is None:
            raise ConnectionLookupError(name)
        return connection

    def fail(self, error: BaseException) -> None:
        """Record ``error`` as the terminal error and stop the active step."""

        if self.state is EngineState.DONE:
            return
        if self.error is None:
            self.error = error
        if self._step is not None and not self._step.done():
            self._step.cancel()

    async def run(self) -> BaseException | None:
        if self.state is not EngineState.IDLE:
            raise ConversationStateError("a conversation can only be run once")
        self._participants = list(self.connections.values())
        logger.info("conversation.start connections={} operations={}", len(self._participants), len(self.plan))
        try:
            error = await self._establish()
            if error is None:
                self.state = EngineState.DRAINING
                await self._drain()
        except asyncio.CancelledError as exc:
            if self.error is None:
                self.error = exc
            raise
        finally:
            await self._finish()
        return self.error

    async def _establish(self) -> BaseException | None:
        self.state = EngineState.ESTABLISHING
        released: asyncio.Future[BaseException | None] = asyncio.get_running_loop().create_future()
        self._barrier = CompletionBarrier()

        def resume(error: BaseException | None) -> None:
            if not released.done():
                released.set_result(error)

        self._barrier.enter(on_zero=resume)

        tasks: list[asyncio.Task[None]] = []
        for connection in self._participants:
            self._barrier.enter()
            if not self._viable(connection):
                self._barrier.leave(ConfigurationError(f"no feasible way to initialize connection {connection.name!r}"))
                continue
            tasks.append(asyncio.create_task(self._open(connection), name=f"wiretalk-open-{connection.name}"))

        self._barrier.leave()
        try:
            error = await released
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        if error is not None and self.error is None:
            self.error = error
        if self.error is not None:
            logger.warning("conversation.establish_failed error={}", self.error)
        return self.error

    async def _open(self, connection: Connection) -> None:
        error: BaseException | None = None
        try:
            await connection.open(self.default, self.settings)
        except Exception as exc:
            error = exc
        finally:
            self._barrier.leave(error)

    async def _drain(self) -> None:
        while self.plan and self.error is None:
            operation = self.plan.popleft()
            self._step = asyncio.create_task(self._dispatch(operation))
            try:
                await self._step
            except asyncio.CancelledError:
                if self.error is None:
                    self._step.cancel()
                    raise
                return
            except Exception as exc:
                self.fail(exc)
                return
            finally:
                self._step = None

    async def _dispatch(self, operation: Operation) -> None:
        await self.hooks.before_operation(operation)
        logger.debug("conversation.step {}", describe(operation))

        match operation:
            case Wait(duration_ms=duration_ms):
                await asyncio.sleep(duration_ms / 1000)
            case Call(callback=callback):
                result = callback()
                if inspect.isawaitable(result):
                    await result
            case Send(target=target, payload=payload):
                connection = self.lookup(target)
                connection.write(await self.hooks.before_send(payload))
            case Receive(target=target, expectation=expectation):
                connection = self.lookup(target)
                chunk = await connection.next_chunk()
                check(expectation, await self.hooks.before_receive(chunk), encoding=connection.encoding or "utf-8")
            case Disconnect(target=target):
                self.lookup(target).close()
            case Drop(target=target, count=count):
                connection = self.lookup(target)
                dropped = connection.discard(count)
                logger.debug(
                    "conversation.dropped target={} chunks={} pending={}", target, dropped, connection.pending_drop
                )
            case _:
                raise TypeError(f"unknown operation: {operation!r}")

    async def _finish(self) -> None:
        self.state = EngineState.DONE
        if self.error is None:
            logger.info("conversation.success")
        else:
            logger.info("conversation.failure error={!r}", self.error)
        try:
            await self.handlers.fire(self.error)
        finally:
            await self._close_all()

    async def _close_all(self) -> None:
        for connection in self._participants:
            connection.close()
        waits = [connection.wait_closed() for connection in self._participants if connection.transport is not None]
        if waits:
            try:
                async with asyncio.timeout(self.settings.close_timeout):
                    await asyncio.gather(*waits)
            except TimeoutError:
                logger.warning("conversation.close_timeout seconds={}", self.settings.close_timeout)

    def _viable(self, connection: Connection) -> bool:
        for config in (connection.config, self.default):
            if config is not None and (config.port is not None or config.initializer is not None):
                return True
        return False
