"""
Per-stack-name leases so two deploy/remove calls never work on the same
stack at the same time within one process.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

from ..exceptions import ConflictError

logger = logging.getLogger(__name__)


class StackLockRegistry:
    """
    Hands out one lock per stack name. A lock only lives while some lease
    holds it or waits for it.
    """
    def __init__(self, timeout: float = 30.0):
        """
        :param timeout: Seconds to wait for a busy stack before giving up.
        """
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    def _checkout(self, name: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = self._locks[name] = threading.Lock()
            self._users[name] = self._users.get(name, 0) + 1
            return lock

    def _checkin(self, name: str) -> None:
        with self._guard:
            self._users[name] -= 1
            if self._users[name] == 0:
                del self._users[name]
                del self._locks[name]

    @contextmanager
    def lease(self, name: str, operation: str = "operation") -> Iterator[None]:
        """
        Holds the lease for ``name`` for the duration of the ``with`` block.

        :raises ConflictError: If the lease is not acquired within the timeout.
        """
        lock = self._checkout(name)
        try:
            if not lock.acquire(timeout=self.timeout):
                raise ConflictError(
                    f"Stack '{name}' is busy with another operation",
                    details={"stack_name": name, "operation": operation},
                    suggestions=["Retry once the running deploy or remove has finished"],
                )
            logger.debug("Acquired lease on stack %s for %s", name, operation)
            try:
                yield
            finally:
                lock.release()
                logger.debug("Released lease on stack %s", name)
        finally:
            self._checkin(name)

    def is_locked(self, name: str) -> bool:
        with self._guard:
            lock = self._locks.get(name)
        return lock is not None and lock.locked()
