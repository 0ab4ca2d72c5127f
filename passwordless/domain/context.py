from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Optional, TypeVar

from passwordless.domain.errors import Canceled, DeadlineExceeded

T = TypeVar("T")


class CallContext:
    """
    Per-call cancellation signal and deadline.

    Passed explicitly to every store and transport operation. A child context
    created with `with_timeout()` is done when its parent is done or when its
    own deadline passes, whichever comes first.

    Usage:
        ctx = CallContext.with_timeout(5.0)
        token_id = await manager.start_login(ctx, "user@example.com")
    """

    def __init__(
        self,
        *,
        deadline: Optional[float] = None,
        parent: Optional["CallContext"] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._deadline = deadline
        self._parent = parent
        self._clock = clock
        self._cancelled = False

    @classmethod
    def background(cls) -> "CallContext":
        """A context that is never canceled and has no deadline."""
        return cls()

    @classmethod
    def with_timeout(
        cls,
        seconds: float,
        *,
        parent: Optional["CallContext"] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CallContext":
        return cls(deadline=clock() + seconds, parent=parent, clock=clock)

    def child(self, seconds: Optional[float] = None) -> "CallContext":
        if seconds is None:
            return CallContext(parent=self, clock=self._clock)
        return CallContext.with_timeout(seconds, parent=self, clock=self._clock)

    def detached(self, seconds: Optional[float] = None) -> "CallContext":
        """
        Fresh context that ignores this one's cancellation. Used for
        compensating actions that must run even after the caller gave up.
        """
        if seconds is None:
            return CallContext(clock=self._clock)
        return CallContext.with_timeout(seconds, clock=self._clock)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def deadline(self) -> Optional[float]:
        own = self._deadline
        inherited = self._parent.deadline if self._parent else None
        if own is None:
            return inherited
        if inherited is None:
            return own
        return min(own, inherited)

    @property
    def cancelled(self) -> bool:
        return self._cancelled or (self._parent is not None and self._parent.cancelled)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is none."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - self._clock())

    def err(self) -> Optional[Canceled]:
        if self.cancelled:
            return Canceled("context canceled")
        deadline = self.deadline
        if deadline is not None and self._clock() >= deadline:
            return DeadlineExceeded("context deadline exceeded")
        return None

    def done(self) -> bool:
        return self.err() is not None

    def check(self) -> None:
        """Raise Canceled / DeadlineExceeded if the context is done."""
        error = self.err()
        if error is not None:
            raise error

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` bounded by the remaining deadline.

        The context is checked first; a wait that outlives the deadline is
        cancelled and reported as DeadlineExceeded.
        """
        try:
            self.check()
        except Canceled:
            # don't leak a never-awaited coroutine
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            raise
        timeout = self.remaining()
        try:
            if timeout is None:
                return await awaitable
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            raise DeadlineExceeded("context deadline exceeded") from e
