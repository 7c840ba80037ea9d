"""Memory allocation policies: plain, scoped, fixed-size and bump allocation."""

from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional, Tuple, Union

Block = Union[bytearray, memoryview]

POINTER_SIZE = 8
MAX_ALIGN = 16


def aligned(size: int, alignment: int) -> int:
    """Round *size* up to a multiple of *alignment* (a power of two)."""
    return ((size - 1) & ~(alignment - 1)) + alignment


def _view(block: Block) -> memoryview:
    return block if isinstance(block, memoryview) else memoryview(block)


def _check_free(block: Optional[Block], size: Optional[int]) -> None:
    """Reject a release that claims more bytes than the block holds."""
    if block is None or size is None:
        return
    if size < 0 or size > len(block):
        raise ValueError(f"cannot free {size} bytes from a block of {len(block)}")


class StaticAlloc:
    """Allocates fresh zeroed buffers; freeing leaves them to the collector."""

    def alloc(self, size: int) -> Optional[bytearray]:
        return bytearray(size) if size else None

    def free(self, block: Optional[Block], size: Optional[int] = None) -> None:
        _check_free(block, size)

    def swap(self, other: "StaticAlloc") -> None:
        """Stateless, so swapping only checks that *other* is of the same kind."""
        if not isinstance(other, StaticAlloc):
            raise TypeError("can only swap with another StaticAlloc")


class ScopeAlloc:
    """Keeps every block it hands out and releases them all at once."""

    header_size = aligned(2 * POINTER_SIZE, MAX_ALIGN)

    def __init__(self, policy=None) -> None:
        self.policy = policy if policy is not None else StaticAlloc()
        self._blocks: Deque[Tuple[Block, int]] = deque()

    def empty(self) -> bool:
        return not self._blocks

    def swap(self, other: "ScopeAlloc") -> None:
        self.policy, other.policy = other.policy, self.policy
        self._blocks, other._blocks = other._blocks, self._blocks

    def take(self, other: "ScopeAlloc") -> None:
        """Adopt all of *other*'s blocks, appending them after ours."""
        if not other.empty():
            if self.empty():
                self._blocks, other._blocks = other._blocks, self._blocks
            else:
                self._blocks.extend(other._blocks)
                other._blocks = deque()
        if hasattr(self.policy, "take"):
            self.policy.take(other.policy)

    def alloc(self, size: int) -> memoryview:
        real_size = self.header_size + size
        raw = self.policy.alloc(real_size)
        self._blocks.appendleft((raw, real_size))
        return _view(raw)[self.header_size:]

    def free(self, block: Optional[Block], size: Optional[int] = None) -> None:
        """Blocks are only released by free_all; this checks the request."""
        _check_free(block, size)

    def free_all(self) -> None:
        """Release every block, most recently allocated first."""
        while self._blocks:
            raw, real_size = self._blocks.popleft()
            self.policy.free(raw, real_size)


class FixedExpandPolicy:
    """Chooses how much memory a fixed-size allocator grabs per expansion."""

    def __init__(self, base_size: int = POINTER_SIZE * 1024,
                 limit_size: int = 0xFFFFFFFF) -> None:
        self.base_size = base_size
        self.limit_size = limit_size

    def prev(self, expand: int) -> int:
        return expand // 2 or 1

    def next_size(self, block_size: int, expand: int) -> Tuple[int, int]:
        """Return the bytes to allocate now and the next expansion factor."""
        size = max(block_size, self.base_size) * expand
        return size, min(self.limit_size, expand * 2)


class FixedAlloc:
    """Hands out blocks of one size from a free list refilled in bulk."""

    def __init__(self, block_size: int, init_expand: int = 1,
                 policy=None, expand_policy: Optional[FixedExpandPolicy] = None) -> None:
        self.block_size = max(block_size, POINTER_SIZE)
        self.init_expand = init_expand
        self.policy = policy if policy is not None else ScopeAlloc()
        self.expand_policy = expand_policy if expand_policy is not None else FixedExpandPolicy()
        self._free: List[Block] = []  # top of the free list is the last item

    def __lt__(self, other: "FixedAlloc") -> bool:
        return self.init_expand < other.init_expand

    def set_block_size(self, block_size: int) -> None:
        self.block_size = block_size

    def empty(self) -> bool:
        return not self._free

    def swap(self, other: "FixedAlloc") -> None:
        self.policy, other.policy = other.policy, self.policy
        self.block_size, other.block_size = other.block_size, self.block_size
        self.init_expand, other.init_expand = other.init_expand, self.init_expand
        self._free, other._free = other._free, self._free

    def take(self, other: "FixedAlloc") -> None:
        """Append *other*'s free blocks to the end of our free list."""
        if self.block_size != other.block_size:
            raise ValueError("cannot merge allocators of different block sizes")
        self.init_expand = max(self.init_expand, other.init_expand)
        if not other.empty():
            self._free = other._free + self._free
            other._free = []
        if hasattr(self.policy, "take"):
            self.policy.take(other.policy)

    def _expand(self) -> None:
        size, self.init_expand = self.expand_policy.next_size(self.block_size, self.init_expand)
        raw = _view(self.policy.alloc(size))
        bs = self.block_size
        blocks = [raw[i * bs:(i + 1) * bs] for i in range(size // bs)]
        blocks.reverse()
        self._free.extend(blocks)

    def alloc(self, size: Optional[int] = None) -> Block:
        if self.empty():
            self._expand()
        return self._free.pop()

    def free(self, block: Optional[Block], size: Optional[int] = None) -> None:
        if block is not None:
            self._free.append(block)


class VariableAlloc:
    """Bump allocator carving aligned pieces out of large chunks."""

    def __init__(self, chunk_size: int = POINTER_SIZE * 1024, policy=None) -> None:
        self.aligned_chunk_size = aligned(chunk_size, MAX_ALIGN)
        self.policy = policy if policy is not None else ScopeAlloc()
        self._buf = memoryview(bytearray())
        self._head = 0
        self._tail = 0

    def remain(self) -> int:
        return self._tail - self._head

    def empty(self) -> bool:
        return self.remain() == 0

    def swap(self, other: "VariableAlloc") -> None:
        self.policy, other.policy = other.policy, self.policy
        self._buf, other._buf = other._buf, self._buf
        self._head, other._head = other._head, self._head
        self._tail, other._tail = other._tail, self._tail

    def take(self, other: "VariableAlloc") -> None:
        """Keep whichever current chunk has more room; discard the other."""
        if self.remain() < other.remain():
            self._buf, self._head, self._tail = other._buf, other._head, other._tail
        other._buf = memoryview(bytearray())
        other._head = other._tail = 0
        if hasattr(self.policy, "take"):
            self.policy.take(other.policy)

    def alloc(self, size: int) -> memoryview:
        size = aligned(size, MAX_ALIGN)
        if self.remain() < size:
            chunk_size = max(self.aligned_chunk_size, size)
            self._buf = _view(self.policy.alloc(chunk_size))
            self._head, self._tail = size, chunk_size
            return self._buf[:size]
        start = self._head
        self._head += size
        return self._buf[start:start + size]

    def free(self, block: Optional[Block], size: Optional[int] = None) -> None:
        """Pieces are never reused individually; this checks the request."""
        _check_free(block, size)