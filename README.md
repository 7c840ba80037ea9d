# ringchan

Fixed-capacity ring-buffer channels for passing messages between threads of
one Python process, together with the pieces around them: named mutexes,
condition variables and semaphores, a waiter, an id pool and a family of
pool allocators.

## Installing

    pip install .

For running the tests:

    pip install ".[test]"
    pytest

## Channels

A channel is an `Elements` ring (in `ringchan.queue`) shared by any number
of `Queue` handles. The producer and consumer relationship (`Relation`) and
the delivery mode (`Transmission`), both in `ringchan.prod_cons`, are chosen
when the ring is made. Five combinations exist, each with its own algorithm
class:

- `SingleSingleUnicast`: single producer, single consumer, unicast
- `SingleMultiUnicast`: single producer, multiple consumers, unicast
- `MultiMultiUnicast`: multiple producers, multiple consumers, unicast
- `SingleMultiBroadcast`: single producer, multiple consumers, broadcast
- `MultiMultiBroadcast`: multiple producers, multiple consumers, broadcast

`make_prod_cons(producers, consumers, transmission, capacity)` builds one of
them and raises `ValueError` for any other combination. The capacity must be
at least 2; the default is 256 slots.

```python
from ringchan.prod_cons import Relation, Transmission
from ringchan.queue import Elements, Queue

elems = Elements(Relation.SINGLE, Relation.MULTI, Transmission.BROADCAST, 256)

reader = Queue(elems)
reader.connect()

writer = Queue(elems)
writer.ready_sending()
writer.push(("hello", 1))

print(reader.pop())   # ('hello', 1)
```

Points to know:

- `Queue.push` returns `False` when the ring is full or, for broadcast
  rings, when no receiver is connected.
- `Queue.pop` raises `queue.Empty` when there is nothing to read; neither
  call blocks.
- In broadcast mode every connected receiver sees every message, and at
  most 32 receivers may be connected at once; each gets its own bit from
  `Elements.connect_receiver`. A receiver starts reading at the ring's
  position when it connects.
- In unicast mode each message goes to exactly one receiver. A
  single-consumer ring admits one receiver, a single-producer ring admits
  one sender (`Queue.ready_sending`).
- `Queue.force_push` on a broadcast ring writes the next slot even if
  receivers still hold it, disconnecting those receivers. On a unicast ring
  it disconnects the receivers and returns `False`.
- `Queue("name")` or `Queue.open("name")` attaches to a ring kept under that
  name within the process, creating it if needed (multi-producer broadcast
  by default, or the kind of ring the queue was attached to before). A named
  ring lives only as long as some queue still refers to it.

## Synchronisation

`ringchan.sync` provides `Mutex`, `Condition` and `Semaphore`. Each is
opened by name, and every object opened under the same name shares one
underlying primitive; an empty name makes `open` return `False`. Timeouts
are in milliseconds, `None` waits forever.

- `Mutex` can be used as a context manager. `lock` takes over a mutex whose
  holder thread has ended; `try_lock` reports that case by raising
  `OwnerDeadError` and leaves the mutex unlocked.
- `Condition.wait(mutex, timeout)` releases the mutex, waits for `notify`
  or `broadcast`, then relocks it; it returns `False` on timeout.
- `Semaphore.open(name, count)` seeds the count only when it creates the
  primitive; `wait` takes one unit, `post(count)` adds units.

`ringchan.waiter.Waiter` combines a named condition and mutex into
`wait_if(pred, timeout)`, which sleeps while `pred()` is true until woken by
`notify` or `broadcast`; `quit_waiting()` ends the waits and wakes everyone.

## Memory pools

`ringchan.alloc` holds `StaticAlloc` (fresh zeroed `bytearray`s),
`ScopeAlloc` (keeps every block until `free_all`), `FixedAlloc` (blocks of
one size from a free list, grown according to a `FixedExpandPolicy`) and
`VariableAlloc` (a bump allocator over large chunks). Apart from
`StaticAlloc`, blocks are `memoryview`s into larger buffers.

`ringchan.wrapper` adds `SyncWrapper` (a lock around every call),
`AsyncWrapper` (one allocator per thread, recycled through
`LimitedRecycler`, `DefaultRecycler` or `EmptyRecycler`),
`VariableWrapper` (size classes from `DefaultMappingPolicy`, larger sizes
sent to a default allocator) and `StaticWrapper` (one shared, lazily made
allocator).

## Utilities

`ringchan.utility` offers `ScopeGuard` and `guard` for running clean-up
code on scope exit, `make_align`, `static_switch`, string helpers
(`is_valid_string`, `make_string`, `make_prefix`, `to_string`) and the
printf-style `log` (standard output) and `error` (standard error).
`ringchan.id_pool.IdPool` hands out small integer ids, each with a storage
slot read by `at` and written by `store`.

## What it does not do

Everything here lives inside one Python process. Names given to rings,
mutexes, conditions and semaphores are looked up in tables private to the
process: nothing is placed in operating-system shared memory, so separate
processes cannot talk through these channels. There is also no blocking
send/receive layer over `Queue`; callers retry `push` and `pop` themselves
or pair them with a `Waiter`. The package has no command-line program.