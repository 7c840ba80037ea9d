"""A fixed-capacity pool of small integer ids with attached storage."""

from __future__ import annotations

from typing import Any, List, Optional

MAX_ID_COUNT = 255


class IdPool:
    """Hands out ids ``0..max_count-1`` through an intrusive free list."""

    def __init__(self, max_count: int = MAX_ID_COUNT) -> None:
        if not 1 <= max_count <= MAX_ID_COUNT:
            raise ValueError(f"max_count must be within 1..{MAX_ID_COUNT}")
        self.max_count = max_count
        self._next: List[int] = [0] * max_count
        self._data: List[Optional[Any]] = [None] * max_count
        self._cursor = 0
        self._prepared = False

    def prepare(self) -> None:
        """Initialise the free list once, if the pool is still pristine."""
        if not self._prepared and self.invalid():
            self.init()
        self._prepared = True

    def init(self) -> None:
        """Link every id to its successor."""
        self._next = list(range(1, self.max_count + 1))

    def invalid(self) -> bool:
        """True if the pool is still in its freshly constructed state."""
        return (
            self._cursor == 0
            and not self._prepared
            and not any(self._next)
            and all(item is None for item in self._data)
        )

    def empty(self) -> bool:
        """True if no id is available."""
        return self._cursor == self.max_count

    def acquire(self) -> int:
        """Take the next free id."""
        if self.empty():
            raise IndexError("id pool is exhausted")
        storage_id = self._cursor
        self._cursor = self._next[storage_id]
        return storage_id

    def release(self, storage_id: int) -> None:
        """Return *storage_id* to the pool; it is handed out next."""
        self._check(storage_id)
        self._next[storage_id] = self._cursor
        self._cursor = storage_id

    def at(self, storage_id: int) -> Any:
        """The value stored under *storage_id*."""
        self._check(storage_id)
        return self._data[storage_id]

    def store(self, storage_id: int, value: Any) -> None:
        """Store *value* under *storage_id*."""
        self._check(storage_id)
        self._data[storage_id] = value

    def _check(self, storage_id: int) -> None:
        if not 0 <= storage_id < self.max_count:
            raise ValueError(f"invalid storage id: {storage_id}")