"""Connection bookkeeping around a ring, and the queue endpoints that use it."""

from __future__ import annotations

import threading
import weakref
from queue import Empty
from typing import Any, Optional

from .prod_cons import (
    ALL_CONNECTIONS,
    DEFAULT_CAPACITY,
    Popped,
    ProdCons,
    Relation,
    Transmission,
    Writer,
    make_prod_cons,
)
from .utility import error, is_valid_string

CONNECTION_BITS = 32
_CC_MASK = (1 << CONNECTION_BITS) - 1

_NAMED: "weakref.WeakValueDictionary[str, Elements]" = weakref.WeakValueDictionary()
_NAMED_LOCK = threading.Lock()


class Elements:
    """A ring together with its sender and receiver connection records.

    Broadcast rings give every receiver its own bit, so at most 32 receivers
    can be connected. Unicast rings count receivers; with a single consumer
    only one receiver is admitted.
    """

    def __init__(
        self,
        producers: Relation = Relation.MULTI,
        consumers: Relation = Relation.MULTI,
        transmission: Transmission = Transmission.BROADCAST,
        capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        self.algorithm: ProdCons = make_prod_cons(
            producers, consumers, transmission, capacity
        )
        self.producers = self.algorithm.producers
        self.consumers = self.algorithm.consumers
        self.transmission = self.algorithm.transmission
        self.capacity = capacity
        self._lock = threading.Lock()
        self._senders = 0
        self._cc = 0

    @property
    def _broadcast(self) -> bool:
        return self.transmission is Transmission.BROADCAST

    def connect_sender(self) -> bool:
        """Register a sender; a single-producer ring admits only one."""
        with self._lock:
            if self.producers is Relation.SINGLE:
                if self._senders:
                    return False
                self._senders = 1
                return True
            self._senders += 1
            return True

    def disconnect_sender(self) -> None:
        """Unregister a sender."""
        with self._lock:
            self._senders = max(0, self._senders - 1)

    def connect_receiver(self) -> int:
        """Register a receiver and return its id, or 0 when none is free."""
        with self._lock:
            if self._broadcast:
                cur = self._cc
                nxt = (cur | (cur + 1)) & _CC_MASK  # set the lowest clear bit
                if nxt == cur:
                    return 0
                self._cc = nxt
                return nxt ^ cur
            if self.consumers is Relation.SINGLE:
                if self._cc:
                    return 0
                self._cc = 1
                return 1
            self._cc = (self._cc + 1) & _CC_MASK
            return self._cc

    def disconnect_receiver(self, mask: int) -> int:
        """Remove the receivers in *mask*; return the remaining connections."""
        with self._lock:
            if self._broadcast or self.consumers is Relation.SINGLE:
                self._cc &= ~mask & _CC_MASK
            elif mask == ALL_CONNECTIONS:
                self._cc = 0
            else:
                self._cc = max(0, self._cc - 1)
            return self._cc

    def connections(self) -> int:
        """The raw connection record: a bit mask or a receiver count."""
        return self._cc

    def conn_count(self) -> int:
        """Number of connected receivers."""
        cc = self._cc
        return bin(cc).count("1") if self._broadcast else cc

    def cursor(self) -> int:
        return self.algorithm.cursor()

    def push(self, wrapper: Any, writer: Writer) -> bool:
        return self.algorithm.push(wrapper, writer)

    def force_push(self, wrapper: Any, writer: Writer) -> bool:
        return self.algorithm.force_push(wrapper, writer)

    def pop(self, wrapper: Any, cursor: int) -> Optional[Popped]:
        return self.algorithm.pop(wrapper, cursor)


class Queue:
    """One endpoint on an Elements ring: it may send, receive or both."""

    def __init__(self, elems: Any = None) -> None:
        self._elems: Optional[Elements] = None
        self._connected = 0
        self._cursor = 0
        self._sender = False
        if isinstance(elems, str):
            self.open(elems)
        else:
            self._elems = elems

    def open(self, name: str) -> bool:
        """Attach to the ring registered under *name*, creating it if needed.

        A new ring takes the kind of the ring this queue used before, or the
        multi-producer broadcast kind.
        """
        template = self._elems
        self._elems = None
        if not is_valid_string(name):
            error("fail open waiter: name is empty!\n")
            return False
        with _NAMED_LOCK:
            elems = _NAMED.get(name)
            if elems is None:
                if template is not None:
                    elems = Elements(
                        template.producers,
                        template.consumers,
                        template.transmission,
                        template.capacity,
                    )
                else:
                    elems = Elements()
                _NAMED[name] = elems
        self._elems = elems
        return True

    def elems(self) -> Optional[Elements]:
        return self._elems

    def connected(self) -> bool:
        return self._connected != 0

    def connected_id(self) -> int:
        return self._connected

    def ready_sending(self) -> bool:
        """Register as a sender once; True if this queue may send."""
        if self._elems is None:
            return False
        if not self._sender:
            self._sender = self._elems.connect_sender()
        return self._sender

    def shut_sending(self) -> None:
        if self._elems is None or not self._sender:
            return
        self._elems.disconnect_sender()

    def connect(self) -> bool:
        """Connect as a receiver, starting at the ring's current position."""
        if self._elems is None:
            return False
        if self.connected():
            return True
        self._connected = self._elems.connect_receiver()
        if self.connected():
            self._cursor = self._elems.cursor()
            return True
        return False

    def disconnect(self) -> bool:
        if self._elems is None or not self.connected():
            return False
        cc, self._connected = self._connected, 0
        self._elems.disconnect_receiver(cc)
        return True

    def conn_count(self) -> int:
        if self._elems is None:
            raise ValueError("queue is not attached to a ring")
        return self._elems.conn_count()

    def valid(self) -> bool:
        return self._elems is not None

    def empty(self) -> bool:
        return not self.valid() or self._cursor == self._elems.cursor()

    def push(self, item: Any) -> bool:
        """Push *item*; False when the ring is full or has no reader."""
        if self._elems is None:
            return False
        return self._elems.push(self, lambda: item)

    def force_push(self, item: Any) -> bool:
        """Push *item*, disconnecting receivers that block the slot."""
        if self._elems is None:
            return False
        return self._elems.force_push(self, lambda: item)

    def pop(self) -> Any:
        """Take the next item; raises queue.Empty when there is none."""
        if self._elems is None:
            raise Empty("queue is not attached to a ring")
        popped = self._elems.pop(self, self._cursor)
        if popped is None:
            raise Empty("no message available")
        self._cursor = popped.cursor
        return popped.value