"""Compute-once values shared between threads."""

from __future__ import annotations

import enum
import logging
import threading
from time import monotonic
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _State(enum.Enum):
    UNSTARTED = "unstarted"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class LazyFuture(Generic[T]):
    """Future whose value is computed on first request, at most once.

    The first caller of `get()` runs `_resolve()` in its own thread. Callers
    arriving while it runs wait for it; callers arriving afterwards get the
    stored value. A failure is stored the same way: every caller receives the
    same exception object and `_resolve()` is never attempted again.
    KeyboardInterrupt and SystemExit are not stored; the interrupted caller
    sees them and a later caller starts the resolution over.

    Example:

        class Answer(LazyFuture[int]):
            def _resolve(self) -> int:
                return expensive()

        answer = Answer()
        answer.get()  # runs expensive()
        answer.get()  # returns the stored value
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._state = _State.UNSTARTED
        self._value: Optional[T] = None
        self._error: Optional[BaseException] = None

    @classmethod
    def from_callable(cls, fn: Callable[[], T]) -> "LazyFuture[T]":
        """Wrap a zero-argument callable."""
        return _CallableLazyFuture(fn)

    def _resolve(self) -> T:  # pragma: no cover - abstract
        raise NotImplementedError

    def get(self, timeout: Optional[float] = None) -> T:
        """Return the resolved value, resolving it first if nobody has yet.

        Args:
            timeout: Seconds to wait for a resolution running in another
                thread. None waits forever. Has no effect on the caller that
                performs the resolution.

        Raises:
            TimeoutError: timeout elapsed while another thread was resolving
            Exception: whatever `_resolve()` raised, for every caller
        """
        with self._condition:
            deadline = None
            while True:
                if self._state is _State.UNSTARTED:
                    self._state = _State.RUNNING
                    owner = True
                    break
                if self._state is not _State.RUNNING:
                    owner = False
                    break
                if deadline is None and timeout is not None:
                    deadline = monotonic() + timeout
                remaining = None if deadline is None else deadline - monotonic()
                if remaining is not None and remaining <= 0:
                    raise TimeoutError(f"{self!r} not resolved within {timeout}s")
                self._condition.wait(remaining)

        if owner:
            self._run()

        return self._outcome()

    # concurrent.futures.Future compatible spelling
    result = get

    def done(self) -> bool:
        with self._condition:
            return self._state in (_State.DONE, _State.FAILED)

    def cancel(self) -> bool:
        """Resolution cannot be cancelled."""
        return False

    def cancelled(self) -> bool:
        return False

    def _run(self) -> None:
        try:
            value = self._resolve()
        except Exception as exc:
            with self._condition:
                self._error = exc
                self._state = _State.FAILED
                self._condition.notify_all()
            logger.debug("%r failed: %s", self, exc)
        except BaseException:
            # interrupted, not failed: the next caller resolves again
            with self._condition:
                self._state = _State.UNSTARTED
                self._condition.notify_all()
            raise
        else:
            with self._condition:
                self._value = value
                self._state = _State.DONE
                self._condition.notify_all()

    def _outcome(self) -> T:
        with self._condition:
            if self._state is _State.FAILED:
                assert self._error is not None
                raise self._error
            return self._value  # type: ignore[return-value]


class _CallableLazyFuture(LazyFuture[T]):
    def __init__(self, fn: Callable[[], T]) -> None:
        super().__init__()
        self._fn = fn

    def _resolve(self) -> T:
        return self._fn()

    def __repr__(self) -> str:
        return f"LazyFuture({self._fn!r})"
