"""Named mutexes, condition variables and semaphores shared within a process.

Objects opened under the same name share one underlying primitive. Timeouts
are given in milliseconds; ``None`` waits forever.
"""

from __future__ import annotations

import errno
import threading
import time
from collections import deque
from typing import Callable, Deque, Dict, Generic, List, Optional, Tuple, TypeVar

from .utility import error, is_valid_string

OWNER_DEAD = getattr(errno, "EOWNERDEAD", 130)
_POLL_SECONDS = 0.01

_T = TypeVar("_T")


class OwnerDeadError(OSError):
    """The thread holding a mutex ended without releasing it."""

    def __init__(self, message: str = "the previous owner died holding the mutex") -> None:
        super().__init__(OWNER_DEAD, message)


def _seconds(timeout: Optional[float]) -> Optional[float]:
    return None if timeout is None else max(0.0, timeout / 1000.0)


class _Registry(Generic[_T]):
    """Reference-counted table of named shared states."""

    def __init__(self, factory: Callable[[], _T]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._items: Dict[str, List] = {}

    def acquire(self, name: str) -> Tuple[_T, bool]:
        with self._lock:
            entry = self._items.get(name)
            created = entry is None
            if entry is None:
                entry = self._items[name] = [self._factory(), 0]
            entry[1] += 1
            return entry[0], created

    def release(self, name: str) -> None:
        with self._lock:
            entry = self._items.get(name)
            if entry is None:
                return
            entry[1] -= 1
            if entry[1] <= 0:
                del self._items[name]


class _NamedObject:
    _registry: _Registry
    _kind = ""

    def __init__(self) -> None:
        self._name: Optional[str] = None
        self._state = None

    def _attach(self, name: Optional[str]) -> Optional[bool]:
        if not is_valid_string(name):
            error("fail %s open: name is empty\n", self._kind)
            return None
        self._detach()
        state, created = self._registry.acquire(name)
        self._name, self._state = name, state
        return created

    def _detach(self) -> None:
        if self._state is None:
            return
        name = self._name
        self._name = self._state = None
        self._registry.release(name)

    def __del__(self) -> None:
        try:
            self._detach()
        except Exception:
            pass


class _MutexState:
    def __init__(self) -> None:
        self.cond = threading.Condition(threading.Lock())
        self.owner: Optional[threading.Thread] = None


class Mutex(_NamedObject):
    """A robust named mutex: a lock left by a dead thread can be recovered."""

    _registry = _Registry(_MutexState)
    _kind = "mutex"

    def __init__(self, name: Optional[str] = None) -> None:
        super().__init__()
        if name is not None:
            self.open(name)

    def valid(self) -> bool:
        """True while the mutex is attached to a named primitive."""
        return self._state is not None

    def open(self, name: Optional[str]) -> bool:
        return self._attach(name) is not None

    def close(self) -> None:
        """Detach from the named primitive."""
        self._detach()

    def lock(self, timeout: Optional[float] = None) -> bool:
        """Acquire, taking over from a dead owner; False on timeout."""
        state = self._state
        if state is None:
            return False
        wait = _seconds(timeout)
        deadline = None if wait is None else time.monotonic() + wait
        with state.cond:
            while state.owner is not None and state.owner.is_alive():
                if deadline is None:
                    state.cond.wait(_POLL_SECONDS)
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                state.cond.wait(min(remaining, _POLL_SECONDS))
            state.owner = threading.current_thread()
            return True

    def try_lock(self) -> bool:
        """Acquire without waiting.

        Raises OwnerDeadError when the holder died; the mutex is then made
        consistent and left unlocked.
        """
        state = self._state
        if state is None:
            return False
        with state.cond:
            owner = state.owner
            if owner is None:
                state.owner = threading.current_thread()
                return True
            if not owner.is_alive():
                state.owner = None
                state.cond.notify_all()
                raise OwnerDeadError()
            return False

    def unlock(self) -> bool:
        """Release; False unless the calling thread holds the mutex."""
        state = self._state
        if state is None:
            return False
        with state.cond:
            if state.owner is not threading.current_thread():
                return False
            state.owner = None
            state.cond.notify()
            return True

    def __enter__(self) -> "Mutex":
        if not self.lock():
            raise RuntimeError("cannot lock a mutex that is not open")
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.unlock()
        return False


class _ConditionState:
    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.waiters: Deque[threading.Event] = deque()


class Condition(_NamedObject):
    """A named condition variable used together with a Mutex."""

    _registry = _Registry(_ConditionState)
    _kind = "condition"

    def __init__(self, name: Optional[str] = None) -> None:
        super().__init__()
        if name is not None:
            self.open(name)

    def valid(self) -> bool:
        """True while the condition is attached to a named primitive."""
        return self._state is not None

    def open(self, name: Optional[str]) -> bool:
        return self._attach(name) is not None

    def close(self) -> None:
        """Detach from the named primitive."""
        self._detach()

    def wait(self, mutex: Mutex, timeout: Optional[float] = None) -> bool:
        """Release *mutex*, wait for a signal, then lock *mutex* again.

        Returns False on timeout or when *mutex* is not held.
        """
        state = self._state
        if state is None:
            return False
        ticket = threading.Event()
        with state.lock:
            state.waiters.append(ticket)
        if not mutex.unlock():
            with state.lock:
                if ticket in state.waiters:
                    state.waiters.remove(ticket)
            return False
        signalled = ticket.wait(_seconds(timeout))
        if not signalled:
            with state.lock:
                try:
                    state.waiters.remove(ticket)
                except ValueError:
                    signalled = True
        mutex.lock()
        return signalled

    def notify(self, mutex: Mutex) -> bool:
        """Wake one waiter."""
        state = self._state
        if state is None:
            return False
        with state.lock:
            if state.waiters:
                state.waiters.popleft().set()
        return True

    def broadcast(self, mutex: Mutex) -> bool:
        """Wake every waiter."""
        state = self._state
        if state is None:
            return False
        with state.lock:
            while state.waiters:
                state.waiters.popleft().set()
        return True


class _SemaphoreState:
    def __init__(self) -> None:
        self.cond = threading.Condition(threading.Lock())
        self.count = 0


class Semaphore(_NamedObject):
    """A named counting semaphore."""

    _registry = _Registry(_SemaphoreState)
    _kind = "semaphore"

    def __init__(self, name: Optional[str] = None, count: int = 0) -> None:
        super().__init__()
        if name is not None:
            self.open(name, count)

    def valid(self) -> bool:
        """True while the semaphore is attached to a named primitive."""
        return self._state is not None

    def open(self, name: Optional[str], count: int = 0) -> bool:
        """Attach to *name*; *count* only seeds a semaphore created now."""
        if count < 0:
            raise ValueError("count must not be negative")
        created = self._attach(name)
        if created is None:
            return False
        if created:
            with self._state.cond:
                self._state.count = count
        return True

    def close(self) -> None:
        """Detach from the named primitive."""
        self._detach()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Take one unit; False on timeout."""
        state = self._state
        if state is None:
            return False
        with state.cond:
            if not state.cond.wait_for(lambda: state.count > 0, _seconds(timeout)):
                return False
            state.count -= 1
            return True

    def post(self, count: int = 1) -> bool:
        """Add *count* units, waking as many waiters."""
        if count < 0:
            raise ValueError("count must not be negative")
        state = self._state
        if state is None:
            return False
        with state.cond:
            state.count += count
            state.cond.notify(count)
        return True