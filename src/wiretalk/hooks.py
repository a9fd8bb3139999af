"""Interception hooks applied around every plan step."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias

from loguru import logger

from wiretalk.operations import Chunk, Operation, Payload

SendHook: TypeAlias = Callable[[Payload], Payload | None | Awaitable[Payload | None]]
ReceiveHook: TypeAlias = Callable[[Chunk], Chunk | None | Awaitable[Chunk | None]]
OperationHook: TypeAlias = Callable[[Operation], Any]


class HookPipeline:
    """Ordered pre-send, pre-receive and pre-operation interceptors.

    Hooks run in registration order. For the send and receive chains a
    non-None return value replaces the value handed to the next hook. Errors
    raised by a hook propagate to the caller unchanged.
    """

    def __init__(self) -> None:
        self.pre_send: list[SendHook] = []
        self.pre_receive: list[ReceiveHook] = []
        self.pre_operation: list[OperationHook] = []

    async def before_send(self, payload: Payload) -> Payload:
        return await self._chain("pre_send", self.pre_send, payload)

    async def before_receive(self, chunk: Chunk) -> Chunk:
        return await self._chain("pre_receive", self.pre_receive, chunk)

    async def before_operation(self, operation: Operation) -> None:
        for hook in self.pre_operation:
            value = hook(operation)
            if inspect.isawaitable(value):
                await value

    @staticmethod
    async def _chain(stage: str, hooks: list[Callable[[Any], Any]], value: Any) -> Any:
        for hook in hooks:
            result = hook(value)
            if inspect.isawaitable(result):
                result = await result
            if result is not None:
                value = result
        if hooks:
            logger.trace("hook.{} hooks={} value={!r}", stage, len(hooks), value)
        return value
