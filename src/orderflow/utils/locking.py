"""Per-order mutual exclusion for command processing.

Every command that mutates an order (or a payment transaction of that
order) runs while holding the order's lock, so concurrent requests against
the same order serialize while different orders proceed in parallel. The
lock is held around ``current_domain.process`` so it also covers the unit
of work commit.
"""

import threading
from collections import defaultdict
from contextlib import contextmanager

from protean.utils.globals import current_domain


class OrderLockManager:
    """Manages one re-entrant lock per order id."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = defaultdict(threading.RLock)
        self._guard = threading.Lock()

    def get_lock(self, order_id: str) -> threading.RLock:
        with self._guard:
            return self._locks[str(order_id)]

    @contextmanager
    def hold(self, order_id: str):
        lock = self.get_lock(order_id)
        with lock:
            yield

    def reset(self) -> None:
        with self._guard:
            self._locks.clear()


order_locks = OrderLockManager()


def process_for_order(order_id: str, command):
    """Process a command synchronously while holding the order's lock."""
    with order_locks.hold(order_id):
        return current_domain.process(command, asynchronous=False)
