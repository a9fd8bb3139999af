"""Plan-building shortcuts that address every connection at once."""

from __future__ import annotations

from typing import TYPE_CHECKING

from wiretalk.operations import Expectation, Payload

if TYPE_CHECKING:
    from wiretalk.conversation import Conversation


class BroadcastView:
    """Expand one call into one operation per registered connection.

    Operations are appended contiguously, in connection registration order.
    """

    def __init__(self, conversation: Conversation) -> None:
        self.conversation = conversation

    def send(self, payload: Payload) -> Conversation:
        for name in self._names():
            self.conversation.send(name, payload)
        return self.conversation

    def expect(self, expectation: Expectation) -> Conversation:
        for name in self._names():
            self.conversation.expect(name, expectation)
        return self.conversation

    def disconnect(self) -> Conversation:
        for name in self._names():
            self.conversation.disconnect(name)
        return self.conversation

    def drop(self, count: int | None = None) -> Conversation:
        for name in self._names():
            self.conversation.drop(name, count)
        return self.conversation

    write = send
    read = expect
    end = disconnect

    def _names(self) -> list[str]:
        return list(self.conversation.connections)
