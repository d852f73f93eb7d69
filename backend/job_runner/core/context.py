"""
Task context: deadline + cancellation for one task invocation.

The SQL pipeline runs in a worker thread, so cancellation is delivered via
callbacks (typically a driver's cancel()/interrupt()) that may be invoked
from the timer thread or the event loop thread.
"""

import itertools
import logging
import threading
import time
from collections.abc import Callable

from job_runner.core.errors import Canceled, ContextError, DeadlineExceeded

_log = logging.getLogger(__name__)


def _noop() -> None:
    return None


class TaskContext:
    """
    Deadline and cancellation signal shared by every stage of a task.

    - timeout: seconds from now; None means no deadline of its own.
    - parent: a child never outlives its parent and is cancelled with it.
    """

    def __init__(self, timeout: float | None = None, *, parent: "TaskContext | None" = None) -> None:
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._ids = itertools.count()
        self._error: ContextError | None = None
        self._timer: threading.Timer | None = None
        self._unlink: Callable[[], None] = _noop

        deadline = parent.deadline if parent is not None else None
        if timeout is not None:
            own = time.monotonic() + max(timeout, 0.0)
            deadline = own if deadline is None else min(deadline, own)
        self._deadline = deadline

        if parent is not None:
            self._unlink = parent.after_cancel(lambda: self._finish(parent.err() or Canceled()))
        if self._deadline is not None and self._error is None:
            delay = max(self._deadline - time.monotonic(), 0.0)
            self._timer = threading.Timer(delay, self._finish, args=(DeadlineExceeded(),))
            self._timer.daemon = True
            self._timer.start()

    def with_timeout(self, timeout: float | None) -> "TaskContext":
        """Derive a child context whose deadline is at most *timeout* seconds away."""
        return TaskContext(timeout, parent=self)

    @property
    def deadline(self) -> float | None:
        """time.monotonic() value at which the context expires (None = never)."""
        return self._deadline

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def done(self) -> bool:
        return self.err() is not None

    def err(self) -> ContextError | None:
        with self._lock:
            if self._error is None and self._deadline is not None and time.monotonic() >= self._deadline:
                self._error = DeadlineExceeded()
            return self._error

    def raise_if_done(self) -> None:
        error = self.err()
        if error is not None:
            raise error

    def cancel(self) -> None:
        self._finish(Canceled())

    def after_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register *callback* to run once when the context ends.

        Runs immediately if the context is already done. Returns a function
        that unregisters the callback.
        """
        with self._lock:
            if self._error is None:
                key = next(self._ids)
                self._callbacks[key] = callback
                return lambda: self._remove(key)
        self._run(callback)
        return _noop

    def close(self) -> None:
        """Release the timer and detach from the parent. Cancels pending work."""
        if self._timer is not None:
            self._timer.cancel()
        self._unlink()
        self._finish(Canceled())

    def __enter__(self) -> "TaskContext":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _remove(self, key: int) -> None:
        with self._lock:
            self._callbacks.pop(key, None)

    def _finish(self, error: ContextError) -> None:
        with self._lock:
            if self._error is not None and self._callbacks == {}:
                return
            if self._error is None:
                self._error = error
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for cb in callbacks:
            self._run(cb)

    @staticmethod
    def _run(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            _log.warning("Task context callback failed", exc_info=True)
