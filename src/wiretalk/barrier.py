"""Counter-based join for outstanding asynchronous work."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeAlias

from wiretalk.errors import BarrierError

Resume: TypeAlias = Callable[[BaseException | None], None]


class CompletionBarrier:
    """Count outstanding units of work and resume once all of them settle.

    The first error handed to ``leave`` is kept and passed to the resume
    continuation. The continuation fires at most once; reaching zero again
    without a new continuation is a programming error.
    """

    def __init__(self) -> None:
        self.outstanding = 0
        self.first_error: BaseException | None = None
        self._on_zero: Resume | None = None

    def enter(self, on_zero: Resume | None = None) -> None:
        if on_zero is not None:
            self._on_zero = on_zero
        self.outstanding += 1

    def leave(self, error: BaseException | None = None) -> None:
        if self.outstanding <= 0:
            raise BarrierError("barrier left more times than it was entered")
        if error is not None and self.first_error is None:
            self.first_error = error
        self.outstanding -= 1
        if self.outstanding:
            return
        resume, self._on_zero = self._on_zero, None
        if resume is None:
            raise BarrierError("barrier reached zero with no continuation to resume")
        resume(self.first_error)
