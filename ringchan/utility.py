"""Small helpers: scope guards, alignment, string helpers and logging."""

from __future__ import annotations

import sys
from typing import Any, Callable, Iterable, Optional

SHM_PREFIX_MARK = "__IPC_SHM__"


class ScopeGuard:
    """Run a cleanup callable once when a scope exits, unless dismissed."""

    def __init__(self, destructor: Callable[[], Any]) -> None:
        self._destructor = destructor
        self._dismissed = False

    def dismiss(self) -> None:
        """Cancel the pending cleanup."""
        self._dismissed = True

    def do_exit(self) -> None:
        """Run the cleanup now if it has not run or been dismissed."""
        if not self._dismissed:
            self._dismissed = True
            self._destructor()

    def __enter__(self) -> "ScopeGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            self.do_exit()
        except Exception:
            # A failing cleanup action cannot be recovered from here.
            pass
        return False


def guard(destructor: Callable[[], Any]) -> ScopeGuard:
    """Create a ScopeGuard for *destructor*."""
    return ScopeGuard(destructor)


def make_align(align: int, size: int) -> int:
    """Round *size* up to a multiple of *align*, which must be a power of two."""
    return (size + align - 1) & ~(align - 1)


def static_switch(
    n: int, i: int, f: Callable[[int], Any], default: Callable[[], Any]
) -> Any:
    """Call ``f(i)`` when ``0 <= i < n``, otherwise ``default()``."""
    if 0 <= i < n:
        return f(i)
    return default()


def is_valid_string(text: Optional[str]) -> bool:
    """True if *text* is present and does not start with a NUL character."""
    return bool(text) and text[0] != "\0"


def make_string(text: Optional[str]) -> str:
    """Return *text* when valid, otherwise an empty string."""
    return text if is_valid_string(text) else ""


def make_prefix(prefix: str, args: Iterable[str]) -> str:
    """Join a prefix, the shared-memory marker and every non-empty argument."""
    return prefix + SHM_PREFIX_MARK + "".join(txt for txt in args if txt)


def to_string(value: Any) -> str:
    """Format an integer with ``%d`` or a float with ``%f``."""
    if isinstance(value, bool):
        raise TypeError("booleans are not formatted")
    if isinstance(value, int):
        return "%d" % value
    if isinstance(value, float):
        return "%f" % value
    raise TypeError(f"cannot format value of type {type(value).__name__}")


def _emit(stream, fmt: str, args: tuple) -> None:
    stream.write(fmt % args if args else fmt)


def log(fmt: str, *args: Any) -> None:
    """Write a printf-style message to standard output."""
    _emit(sys.stdout, fmt, args)


def error(fmt: str, *args: Any) -> None:
    """Write a printf-style message to standard error."""
    _emit(sys.stderr, fmt, args)