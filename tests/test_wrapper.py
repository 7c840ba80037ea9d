import random
import threading

import pytest

from ringchan.alloc import FixedAlloc, StaticAlloc, VariableAlloc
from ringchan.wrapper import (
    AsyncWrapper,
    DefaultMappingPolicy,
    DefaultRecycler,
    EmptyRecycler,
    LimitedRecycler,
    StaticWrapper,
    SyncWrapper,
    VariableWrapper,
)

DATA_MIN = 4
DATA_MAX = 256
LOOP_COUNT = 2048


class _Bin:
    def __init__(self, items):
        self.items = list(items)

    def empty(self):
        return not self.items

    def swap(self, other):
        self.items, other.items = other.items, self.items


def test_limited_recycler_recovers_oldest_first():
    rec = LimitedRecycler()
    for i in (10, 20, 30):
        rec.collect(FixedAlloc(16, init_expand=i))
    first = FixedAlloc(16, init_expand=999)
    rec.try_recover(first)
    assert first.init_expand == 10
    second = FixedAlloc(16, init_expand=999)
    rec.try_recover(second)
    assert second.init_expand == 20


def test_limited_recycler_keeps_at_most_32():
    rec = LimitedRecycler()
    for i in range(40):
        rec.collect(FixedAlloc(16, init_expand=i))
    for expected in range(8, 40):
        target = FixedAlloc(16, init_expand=-1)
        rec.try_recover(target)
        assert target.init_expand == expected
    target = FixedAlloc(16, init_expand=-1)
    rec.try_recover(target)
    assert target.init_expand == -1


def test_limited_recycler_replenish_keeps_store():
    rec = LimitedRecycler()
    rec.collect(FixedAlloc(16, init_expand=5))
    rec.try_replenish(FixedAlloc(16), 100)
    target = FixedAlloc(16, init_expand=1)
    rec.try_recover(target)
    assert target.init_expand == 5


def test_default_recycler_fills_by_remain():
    donor = VariableAlloc(64)
    donor.alloc(16)
    assert donor.remain() == 48
    rec = DefaultRecycler()
    rec.collect(donor)
    target = VariableAlloc(64)
    rec.try_replenish(target, 32)
    assert target.remain() == 48


def test_default_recycler_skips_fill_when_room():
    donor = VariableAlloc(64)
    donor.alloc(32)
    rec = DefaultRecycler()
    rec.collect(donor)
    target = VariableAlloc(64)
    target.alloc(16)
    rec.try_replenish(target, 8)
    assert target.remain() == 48
    fresh = VariableAlloc(64)
    rec.try_replenish(fresh, 1)
    assert fresh.remain() == 32


def test_default_recycler_fills_empty_fixed_alloc():
    donor = FixedAlloc(16)
    marker = bytearray(16)
    donor.free(marker)
    rec = DefaultRecycler()
    rec.collect(donor)
    target = FixedAlloc(16)
    assert target.empty()
    rec.try_replenish(target, 16)
    assert target.alloc() is marker


def test_default_recycler_recovers_without_take():
    rec = DefaultRecycler()
    rec.collect(_Bin(["x"]))
    target = _Bin([])
    rec.try_replenish(target, 1)
    assert target.items == ["x"]


def test_empty_recycler_keeps_nothing():
    rec = EmptyRecycler()
    rec.collect(FixedAlloc(16, init_expand=7))
    target = FixedAlloc(16, init_expand=1)
    rec.try_recover(target)
    rec.try_replenish(target, 16)
    assert target.init_expand == 1
    assert target.empty()


def test_async_wrapper_recovers_collected_allocator():
    rec = DefaultRecycler()
    donor = FixedAlloc(16)
    marker = bytearray(16)
    donor.free(marker)
    rec.collect(donor)
    wrapper = AsyncWrapper(lambda: FixedAlloc(16), rec)
    assert wrapper.alloc(16) is marker


def test_async_wrapper_reuses_freed_blocks():
    wrapper = AsyncWrapper(lambda: FixedAlloc(32))
    wrapper.alloc(32)
    block = wrapper.alloc(32)
    assert len(block) == 32
    wrapper.free(block, 32)
    assert wrapper.alloc(32) is block


def test_async_wrapper_builds_one_allocator_per_thread():
    created = []
    lengths = []
    lock = threading.Lock()

    def factory():
        with lock:
            created.append(1)
        return FixedAlloc(16)

    wrapper = AsyncWrapper(factory, EmptyRecycler())

    def work():
        got = [len(wrapper.alloc(16)), len(wrapper.alloc(16))]
        with lock:
            lengths.extend(got)

    threads = [threading.Thread(target=work) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert lengths == [16] * 8
    assert len(created) == 4
    assert len(wrapper.alloc(16)) == 16
    assert len(created) == 5


def test_sync_wrapper_hands_out_disjoint_blocks():
    wrapper = SyncWrapper(FixedAlloc(16))
    results = {}

    def work(tag):
        blocks = []
        for _ in range(200):
            block = wrapper.alloc(16)
            block[:] = bytes([tag]) * 16
            blocks.append(block)
        results[tag] = blocks

    threads = [threading.Thread(target=work, args=(tag,)) for tag in range(1, 9)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(results) == list(range(1, 9))
    contents = [bytes(b) for tag in sorted(results) for b in results[tag]]
    expected = [bytes([tag]) * 16 for tag in range(1, 9) for _ in range(200)]
    assert contents == expected
    extra = wrapper.alloc(16)
    assert len(extra) == 16


def test_sync_wrapper_swap():
    a = SyncWrapper(FixedAlloc(16))
    b = SyncWrapper(FixedAlloc(32))
    a.swap(b)
    assert len(a.alloc(1)) == 32
    assert len(b.alloc(1)) == 16


@pytest.mark.parametrize(
    "class_id, expected", [(0, 8), (1, 16), (63, 512), (64, 0), (-1, 0)]
)
def test_mapping_block_size(class_id, expected):
    assert DefaultMappingPolicy().block_size(class_id) == expected


@pytest.mark.parametrize(
    "size, expected",
    [(1, 0), (8, 0), (9, 1), (100, 12), (512, 63), (513, None), (0, None)],
)
def test_mapping_classify(size, expected):
    assert DefaultMappingPolicy().classify(size) == expected


def test_variable_wrapper_routes_by_size():
    wrapper = VariableWrapper()
    assert len(wrapper.alloc(10)) == 16
    big = wrapper.alloc(1000)
    assert isinstance(big, bytearray)
    assert len(big) == 1000


def test_variable_wrapper_free_then_alloc_reuses_block():
    wrapper = VariableWrapper()
    block = wrapper.alloc(100)
    assert len(block) == 104
    wrapper.free(block, 100)
    assert wrapper.alloc(100) is block


def test_variable_wrapper_swap():
    first = VariableWrapper()
    second = VariableWrapper()
    block = first.alloc(10)
    first.free(block, 10)
    first.swap(second)
    assert second.alloc(10) is block


def test_static_wrapper_shares_one_instance():
    calls = []

    def factory():
        calls.append(1)
        return FixedAlloc(24)

    wrapper = StaticWrapper(factory)
    assert wrapper.instance() is wrapper.instance()
    block = wrapper.alloc(1)
    assert len(block) == 24
    wrapper.free(block, 24)
    assert wrapper.alloc(1) is block
    assert len(calls) == 1


def _sizes(seed):
    rng = random.Random(seed)
    return [rng.randint(DATA_MIN, DATA_MAX) for _ in range(LOOP_COUNT)]


def _order(mode, count):
    indices = list(range(count))
    if mode == "LIFO":
        indices.reverse()
    elif mode == "Random":
        random.Random(3).shuffle(indices)
    return indices


WRAPPERS = {
    "variable": VariableWrapper,
    "async": lambda: AsyncWrapper(VariableWrapper),
    "sync": lambda: SyncWrapper(VariableWrapper()),
    "static": lambda: StaticWrapper(VariableWrapper),
    "plain": StaticAlloc,
}


@pytest.mark.parametrize("mode", ["FIFO", "LIFO", "Random"])
@pytest.mark.parametrize("kind", sorted(WRAPPERS))
def test_alloc_free_patterns(kind, mode):
    wrapper = WRAPPERS[kind]()
    sizes = _sizes(11)
    blocks = []
    for n, size in enumerate(sizes):
        block = wrapper.alloc(size)
        assert len(block) >= size
        block[:size] = bytes([n % 251]) * size
        blocks.append(block)
    for n, (block, size) in enumerate(zip(blocks, sizes)):
        assert bytes(block[:size]) == bytes([n % 251]) * size
    for n in _order(mode, len(blocks)):
        wrapper.free(blocks[n], sizes[n])
    again = wrapper.alloc(sizes[0])
    assert len(again) >= sizes[0]