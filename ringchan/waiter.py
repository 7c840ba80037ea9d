"""A named waiter combining a condition variable, a mutex and a quit flag."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from .sync import Condition, Mutex


class Waiter:
    """Lets threads sleep while a predicate holds, until woken or told to quit."""

    def __init__(self, name: Optional[str] = None) -> None:
        self._cond = Condition()
        self._lock = Mutex()
        self._quit = threading.Event()
        if name is not None:
            self.open(name)

    def valid(self) -> bool:
        return self._cond.valid() and self._lock.valid()

    def open(self, name: str) -> bool:
        """Attach to the condition and mutex derived from *name*."""
        self._quit.clear()
        if not self._cond.open(name + "_WAITER_COND_"):
            return False
        if not self._lock.open(name + "_WAITER_LOCK_"):
            self._cond.close()
            return False
        return self.valid()

    def close(self) -> None:
        self._cond.close()
        self._lock.close()

    def wait_if(self, pred: Callable[[], bool], timeout: Optional[float] = None) -> bool:
        """Wait while *pred* is true and no quit was requested.

        *timeout* is in milliseconds per wait; returns False when it runs out.
        """
        if not self.valid():
            return False
        with self._lock:
            while not self._quit.is_set() and pred():
                if not self._cond.wait(self._lock, timeout):
                    return False
        return True

    def notify(self) -> bool:
        """Wake one waiter."""
        if not self.valid():
            return False
        with self._lock:
            pass
        return self._cond.notify(self._lock)

    def broadcast(self) -> bool:
        """Wake every waiter."""
        if not self.valid():
            return False
        with self._lock:
            pass
        return self._cond.broadcast(self._lock)

    def quit_waiting(self) -> bool:
        """Stop waits made through this waiter and wake everyone."""
        self._quit.set()
        return self.broadcast()