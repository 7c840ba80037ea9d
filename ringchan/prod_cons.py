"""Ring-buffer producer/consumer algorithms for unicast and broadcast queues.

Every algorithm works on a ring of ``capacity`` slots. The queue that uses it
is passed in as *wrapper*. It must offer ``elems()``, whose result has
``connections()`` and ``disconnect_receiver(mask)``, and ``connected_id()``,
the receiver bit of the caller.

Each operation runs under a per-ring lock, so producers and consumers on
different threads see every push and pop as one atomic step.
"""

from __future__ import annotations

import enum
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from .utility import log

DEFAULT_CAPACITY = 256
MASK64 = 0xFFFFFFFFFFFFFFFF
ALL_CONNECTIONS = 0xFFFFFFFF

Writer = Callable[[], Any]


class Relation(enum.Enum):
    """How many parties may sit on one side of a queue."""

    SINGLE = "single"
    MULTI = "multi"


class Transmission(enum.Enum):
    """Whether a message goes to one receiver or to all of them."""

    UNICAST = "unicast"
    BROADCAST = "broadcast"


@dataclass(frozen=True)
class Popped:
    """A message taken from a ring.

    *cursor* is the reader's advanced cursor. *last* tells whether this
    reader was the last one that still had to read the slot.
    """

    value: Any
    cursor: int
    last: bool


class _Slot:
    __slots__ = ("data", "rc", "flag")

    def __init__(self) -> None:
        self.data: Any = None
        self.rc = 0  # read counter / receiver mask
        self.flag = 0  # commit flag


class ProdCons(ABC):
    """Common ring storage for all producer/consumer algorithms."""

    producers: Relation
    consumers: Relation
    transmission: Transmission

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 2:
            raise ValueError("capacity must be at least 2")
        self.capacity = capacity
        self._slots = [_Slot() for _ in range(capacity)]
        self._lock = threading.RLock()

    def _slot(self, counter: int) -> _Slot:
        return self._slots[counter % self.capacity]

    def cursor(self) -> int:
        """The position a newly connected reader starts from."""
        return 0

    @abstractmethod
    def push(self, wrapper: Any, writer: Writer) -> bool:
        """Store ``writer()`` in the next slot; False when it cannot be done."""

    @abstractmethod
    def force_push(self, wrapper: Any, writer: Writer) -> bool:
        """Push even if readers lag behind, disconnecting the ones in the way."""

    @abstractmethod
    def pop(self, wrapper: Any, cursor: int) -> Optional[Popped]:
        """Take the next message for the reader at *cursor*; None when empty."""


class SingleSingleUnicast(ProdCons):
    """One producer, one consumer, each message read once."""

    producers = Relation.SINGLE
    consumers = Relation.SINGLE
    transmission = Transmission.UNICAST
    _force_mask = ALL_CONNECTIONS

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        super().__init__(capacity)
        self._rd = 0  # read index
        self._wt = 0  # write index

    def push(self, wrapper: Any, writer: Writer) -> bool:
        with self._lock:
            if (self._wt - (self._rd - 1)) % self.capacity == 0:
                return False  # full
            value = writer()
            self._slot(self._wt).data = value
            self._wt += 1
            return True

    def force_push(self, wrapper: Any, writer: Writer) -> bool:
        """Reached only when there is no live reader: drop the receivers."""
        wrapper.elems().disconnect_receiver(self._force_mask)
        return False

    def pop(self, wrapper: Any, cursor: int) -> Optional[Popped]:
        with self._lock:
            if (self._rd - self._wt) % self.capacity == 0:
                return None  # empty
            value = self._slot(self._rd).data
            self._rd += 1
            return Popped(value, cursor, True)


class SingleMultiUnicast(SingleSingleUnicast):
    """One producer, several competing consumers."""

    consumers = Relation.MULTI
    _force_mask = 1


class MultiMultiUnicast(SingleMultiUnicast):
    """Several producers, several competing consumers."""

    producers = Relation.MULTI


class SingleMultiBroadcast(ProdCons):
    """One producer; every connected reader sees every message."""

    producers = Relation.SINGLE
    consumers = Relation.MULTI
    transmission = Transmission.BROADCAST

    EP_MASK = 0x00000000FFFFFFFF
    EP_INCR = 0x0000000100000000
    _EPOCH_BITS = MASK64 ^ EP_MASK

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        super().__init__(capacity)
        self._wt = 0
        self._epoch = 0

    def cursor(self) -> int:
        return self._wt

    def _commit(self, slot: _Slot, cc: int, value: Any) -> None:
        slot.rc = self._epoch | cc
        slot.data = value
        self._wt += 1

    def push(self, wrapper: Any, writer: Writer) -> bool:
        with self._lock:
            cc = wrapper.elems().connections()
            if cc == 0:
                return False  # no reader
            slot = self._slot(self._wt)
            rem_cc = slot.rc & self.EP_MASK
            if (cc & rem_cc) and (slot.rc & self._EPOCH_BITS) == self._epoch:
                return False  # a reader has not finished this slot yet
            self._commit(slot, cc, writer())
            return True

    def force_push(self, wrapper: Any, writer: Writer) -> bool:
        with self._lock:
            self._epoch = (self._epoch + self.EP_INCR) & MASK64
            elems = wrapper.elems()
            cc = elems.connections()
            if cc == 0:
                return False
            slot = self._slot(self._wt)
            rem_cc = slot.rc & self.EP_MASK
            if cc & rem_cc:
                log("force_push: k = %u, cc = %u, rem_cc = %u\n", 0, cc, rem_cc)
                cc = elems.disconnect_receiver(rem_cc)
                if cc == 0:
                    return False
            self._commit(slot, cc, writer())
            return True

    def pop(self, wrapper: Any, cursor: int) -> Optional[Popped]:
        with self._lock:
            if cursor == self._wt:
                return None
            slot = self._slot(cursor)
            cursor += 1
            value = slot.data
            if slot.rc & self.EP_MASK == 0:
                return Popped(value, cursor, True)
            slot.rc &= ~wrapper.connected_id()
            return Popped(value, cursor, slot.rc & self.EP_MASK == 0)


class MultiMultiBroadcast(ProdCons):
    """Several producers; every connected reader sees every message."""

    producers = Relation.MULTI
    consumers = Relation.MULTI
    transmission = Transmission.BROADCAST

    RC_MASK = 0x00000000FFFFFFFF
    EP_MASK = 0x00FFFFFFFFFFFFFF
    EP_INCR = 0x0100000000000000
    IC_MASK = 0xFF000000FFFFFFFF
    IC_INCR = 0x0000000100000000
    _EPOCH_BITS = MASK64 ^ EP_MASK
    _IC_BITS = MASK64 ^ IC_MASK
    _NOT_RC = MASK64 ^ RC_MASK

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        super().__init__(capacity)
        self._ct = 0  # commit index
        self._epoch = 0

    def cursor(self) -> int:
        return self._ct

    @classmethod
    def inc_rc(cls, rc: int) -> int:
        """Bump the read-generation counter of *rc*, keeping other bits."""
        return (rc & cls.IC_MASK) | ((rc + cls.IC_INCR) & cls._IC_BITS)

    @classmethod
    def inc_mask(cls, rc: int) -> int:
        """Bumped counter of *rc* with the receiver bits cleared."""
        return cls.inc_rc(rc) & cls._NOT_RC

    def _commit(self, slot: _Slot, cc: int, value: Any) -> None:
        cur_ct = self._ct
        slot.rc = self.inc_mask(self._epoch | (slot.rc & self.EP_MASK)) | cc
        self._ct = cur_ct + 1
        slot.data = value
        slot.flag = ~cur_ct

    def push(self, wrapper: Any, writer: Writer) -> bool:
        with self._lock:
            cc = wrapper.elems().connections()
            if cc == 0:
                return False  # no reader
            slot = self._slot(self._ct)
            rem_cc = slot.rc & self.RC_MASK
            if (cc & rem_cc) and (slot.rc & self._EPOCH_BITS) == self._epoch:
                return False  # a reader has not finished this slot yet
            if not rem_cc and slot.flag and slot.flag != self._ct:
                return False  # full
            self._commit(slot, cc, writer())
            return True

    def force_push(self, wrapper: Any, writer: Writer) -> bool:
        with self._lock:
            self._epoch = (self._epoch + self.EP_INCR) & MASK64
            elems = wrapper.elems()
            cc = elems.connections()
            if cc == 0:
                return False
            slot = self._slot(self._ct)
            rem_cc = slot.rc & self.RC_MASK
            if cc & rem_cc:
                log("force_push: k = %u, cc = %u, rem_cc = %u\n", 0, cc, rem_cc)
                cc = elems.disconnect_receiver(rem_cc)
                if cc == 0:
                    return False
            self._commit(slot, cc, writer())
            return True

    def pop(self, wrapper: Any, cursor: int) -> Optional[Popped]:
        with self._lock:
            slot = self._slot(cursor)
            if slot.flag != ~cursor:
                return None  # empty
            cursor += 1
            value = slot.data
            if slot.rc & self.RC_MASK == 0:
                slot.flag = cursor + self.capacity - 1
                return Popped(value, cursor, True)
            nxt_rc = self.inc_rc(slot.rc) & ~wrapper.connected_id()
            last = nxt_rc & self.RC_MASK == 0
            if last:
                slot.flag = cursor + self.capacity - 1
            slot.rc = nxt_rc
            return Popped(value, cursor, last)


_ALGORITHMS: Dict[Tuple[Relation, Relation, Transmission], type] = {
    (Relation.SINGLE, Relation.SINGLE, Transmission.UNICAST): SingleSingleUnicast,
    (Relation.SINGLE, Relation.MULTI, Transmission.UNICAST): SingleMultiUnicast,
    (Relation.MULTI, Relation.MULTI, Transmission.UNICAST): MultiMultiUnicast,
    (Relation.SINGLE, Relation.MULTI, Transmission.BROADCAST): SingleMultiBroadcast,
    (Relation.MULTI, Relation.MULTI, Transmission.BROADCAST): MultiMultiBroadcast,
}


def make_prod_cons(
    producers: Relation,
    consumers: Relation,
    transmission: Transmission,
    capacity: int = DEFAULT_CAPACITY,
) -> ProdCons:
    """Build the algorithm for the given relation and transmission."""
    key = (Relation(producers), Relation(consumers), Transmission(transmission))
    try:
        cls = _ALGORITHMS[key]
    except KeyError:
        raise ValueError(
            "unsupported combination: %s/%s/%s"
            % (key[0].value, key[1].value, key[2].value)
        ) from None
    return cls(capacity)