"""
Purpose: Mutual-exclusion boundaries for dispatch.
What it does:
Hands out one re-entrant lock per resource key:
- request_<id>  : one transition at a time per request
- group_<id>    : capacity changes on a shared-ride group
- driver_<id>   : availability / assignment of a driver

Acquisition order is always request -> group -> driver, so nested use never deadlocks.
Independent keys never contend, so dispatch for different drivers/groups runs in parallel.

Keys are dropped once nothing can change their resource again: a request key
when the request reaches a terminal status, a group key when the group is
deleted. A caller that fetched a key just before the drop finds the resource
terminal (or gone) under the old lock and fails its checks. Driver keys are
kept, one per registered driver.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


def request_key(request_id: str) -> str:
    return f"request_{request_id}"


def group_key(group_id: str) -> str:
    return f"group_{group_id}"


def driver_key(driver_id: str) -> str:
    return f"driver_{driver_id}"


class LockManager:
    """
    In-process lock manager. A distributed implementation (e.g. Redis) only
    needs to provide the same lock(key) context manager.
    """
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def _get(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        lock = self._get(key)
        with lock:
            yield

    def __contains__(self, key: str) -> bool:
        with self._guard:
            return key in self._locks

    def discard(self, key: str) -> None:
        """Forget the lock of a finished resource (a terminal request, an emptied group)."""
        with self._guard:
            self._locks.pop(key, None)
