"""Allocator wrappers: recycling, per-thread, locked, size-class and shared."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Callable, Deque, List, Optional

from .alloc import POINTER_SIZE, FixedAlloc, StaticAlloc

RECYCLE_LIMIT = 32


class LimitedRecycler:
    """Keeps up to 32 retired allocators and hands them to new owners."""

    limit = RECYCLE_LIMIT

    def __init__(self) -> None:
        self._allocs: Deque[Any] = deque()
        self._lock = threading.Lock()

    def try_recover(self, alloc: Any) -> None:
        """Swap the oldest retired allocator into *alloc*, if there is one."""
        with self._lock:
            if not self._allocs:
                return
            alloc.swap(self._allocs.popleft())

    def collect(self, alloc: Any) -> None:
        """Retire *alloc*, dropping the oldest one when the store is full."""
        with self._lock:
            if self._allocs and len(self._allocs) >= self.limit:
                self._allocs.popleft()
            if len(self._allocs) < self.limit:
                self._allocs.append(alloc)

    def try_replenish(self, alloc: Any, size: int) -> None:
        """Nothing to do for a plain limited recycler."""


class DefaultRecycler(LimitedRecycler):
    """A recycler that also refills an allocator that has run dry."""

    def _try_fill(self, alloc: Any) -> None:
        with self._lock:
            if not self._allocs:
                return
            alloc.take(self._allocs.popleft())

    def try_replenish(self, alloc: Any, size: int) -> None:
        """Top up *alloc* from retired allocators when it lacks room."""
        has_take = hasattr(alloc, "take")
        has_remain = hasattr(alloc, "remain")
        has_empty = hasattr(alloc, "empty")
        if has_take and has_remain:
            if alloc.remain() < size:
                self._try_fill(alloc)
        elif has_take and has_empty:
            if alloc.empty():
                self._try_fill(alloc)
        elif not has_take and has_empty:
            if alloc.empty():
                self.try_recover(alloc)


class EmptyRecycler(LimitedRecycler):
    """A recycler whose store holds nothing, so retired allocators are dropped."""

    limit = 0

    def try_recover(self, alloc: Any) -> None:
        """Leave *alloc* as built: the store never has anything to hand over."""
        super().try_recover(alloc)

    def collect(self, alloc: Any) -> None:
        """Drop *alloc*: a store with no room keeps nothing."""
        super().collect(alloc)

    def try_replenish(self, alloc: Any, size: int) -> None:
        """Never tops anything up."""
        super().try_replenish(alloc, size)


class _Slot:
    """Per-thread allocator; hands it back to the recycler when the thread ends."""

    def __init__(self, alloc: Any, recycler: Any) -> None:
        self.alloc = alloc
        self.recycler = recycler

    def __del__(self) -> None:
        try:
            self.recycler.collect(self.alloc)
        except Exception:
            pass


class AsyncWrapper:
    """Gives every thread its own allocator built by *factory*."""

    def __init__(self, factory: Callable[[], Any], recycler: Any = None) -> None:
        self._factory = factory
        self.recycler = recycler if recycler is not None else DefaultRecycler()
        self._local = threading.local()

    def _local_alloc(self) -> Any:
        slot = getattr(self._local, "slot", None)
        if slot is None:
            alloc = self._factory()
            self.recycler.try_recover(alloc)
            slot = _Slot(alloc, self.recycler)
            self._local.slot = slot
        return slot.alloc

    def alloc(self, size: int) -> Any:
        alloc = self._local_alloc()
        self.recycler.try_replenish(alloc, size)
        return alloc.alloc(size)

    def free(self, block: Any, size: Optional[int] = None) -> None:
        self._local_alloc().free(block, size)


class SyncWrapper:
    """Serialises every call to the wrapped allocator with a lock."""

    def __init__(self, alloc_policy: Any) -> None:
        self._lock = threading.Lock()
        self._alloc = alloc_policy

    def swap(self, other: "SyncWrapper") -> None:
        with self._lock:
            self._alloc.swap(other._alloc)

    def alloc(self, size: int) -> Any:
        with self._lock:
            return self._alloc.alloc(size)

    def free(self, block: Any, size: Optional[int] = None) -> None:
        with self._lock:
            self._alloc.free(block, size)


class DefaultMappingPolicy:
    """Maps request sizes onto evenly spaced size classes."""

    def __init__(self, base_size: int = 0, iter_size: int = POINTER_SIZE,
                 classes_size: int = 64) -> None:
        self.base_size = base_size
        self.iter_size = iter_size
        self.classes_size = classes_size

    def block_size(self, class_id: int) -> int:
        """Block size of a class, or 0 for an id out of range."""
        if 0 <= class_id < self.classes_size:
            return self.base_size + (class_id + 1) * self.iter_size
        return 0

    def classify(self, size: int) -> Optional[int]:
        """The class serving *size*, or None when no class fits it."""
        class_id = (size - self.base_size - 1) // self.iter_size
        if 0 <= class_id < self.classes_size:
            return class_id
        return None


class VariableWrapper:
    """Serves small sizes from per-class fixed allocators, the rest elsewhere."""

    def __init__(self, fixed_factory: Callable[[int], Any] = FixedAlloc,
                 default_alloc: Any = None,
                 mapping: Optional[DefaultMappingPolicy] = None) -> None:
        self.mapping = mapping if mapping is not None else DefaultMappingPolicy()
        self.default_alloc = default_alloc if default_alloc is not None else StaticAlloc()
        self._fixed: List[Any] = [
            fixed_factory(self.mapping.block_size(class_id))
            for class_id in range(self.mapping.classes_size)
        ]

    def swap(self, other: "VariableWrapper") -> None:
        for mine, theirs in zip(self._fixed, other._fixed):
            mine.swap(theirs)

    def alloc(self, size: int) -> Any:
        class_id = self.mapping.classify(size)
        if class_id is None:
            return self.default_alloc.alloc(size)
        return self._fixed[class_id].alloc(size)

    def free(self, block: Any, size: int) -> None:
        class_id = self.mapping.classify(size)
        if class_id is None:
            self.default_alloc.free(block, size)
        else:
            self._fixed[class_id].free(block, size)


class StaticWrapper:
    """Shares one lazily created allocator among all users of the wrapper."""

    def __init__(self, factory: Callable[[], Any]) -> None:
        self._factory = factory
        self._instance: Any = None
        self._lock = threading.Lock()

    def instance(self) -> Any:
        with self._lock:
            if self._instance is None:
                self._instance = self._factory()
            return self._instance

    def alloc(self, size: int) -> Any:
        return self.instance().alloc(size)

    def free(self, block: Any, size: Optional[int] = None) -> None:
        self.instance().free(block, size)