"""In-process ring-buffer channels, named synchronisation primitives and pool allocators."""

__version__ = "0.1.0"

__all__ = [
    "utility",
    "id_pool",
    "alloc",
    "wrapper",
    "sync",
    "waiter",
    "prod_cons",
    "queue",
]