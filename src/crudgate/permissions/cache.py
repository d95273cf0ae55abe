"""
Per-role policy cache.

Policies are loaded once per role and kept until the cache is cleared or the
role is invalidated. There is no TTL; writers go through the checker, which
decides whether a policy mutation invalidates anything.
"""

import threading
from contextlib import contextmanager
from typing import Dict, List, Optional

from crudgate.interface.permissions import Policy
import logging

logger = logging.getLogger(__name__)


class RWLock:
    """Many concurrent readers or a single writer"""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    def acquire_read(self):
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            while self._writer or self._readers > 0:
                self._cond.wait()
            self._writer = True

    def release_write(self):
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class PolicyCache:
    """
    Role id -> list of policies.

    Lookups take the shared lock, population and invalidation the exclusive
    one. The lock is never held while the store is queried.
    """

    def __init__(self):
        self._lock = RWLock()
        self._policies: Dict[str, List[Policy]] = {}

    def get(self, role_id: str) -> Optional[List[Policy]]:
        """Cached policies for a role, ``None`` when the role was never loaded"""
        with self._lock.read():
            policies = self._policies.get(role_id)

        if policies is None:
            logger.debug(f"Policy cache miss for role {role_id}")
            return None

        logger.debug(f"Policy cache hit for role {role_id}")
        return list(policies)

    def set(self, role_id: str, policies: List[Policy]):
        with self._lock.write():
            self._policies[role_id] = list(policies)

    def invalidate(self, role_id: str):
        with self._lock.write():
            self._policies.pop(role_id, None)
        logger.info(f"Invalidated policy cache for role {role_id}")

    def clear(self):
        with self._lock.write():
            self._policies.clear()
        logger.info("Policy cache cleared")

    def __contains__(self, role_id: str) -> bool:
        with self._lock.read():
            return role_id in self._policies

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._policies)
