"""
In-process mutual exclusion for ledger writers.

Each lock key gets its own re-entrant lock. Keys are always acquired in sorted
order, so two operations touching the same accounts in opposite directions
cannot deadlock. Database row locks and the account version column cover
writers running in other processes.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Tuple

LockKey = Tuple[str, int]


def account_key(account_id: int) -> LockKey:
    return ("account", int(account_id))


def owner_key(user_id: int) -> LockKey:
    return ("owner", int(user_id))


class LockRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[LockKey, threading.RLock] = {}

    def _lock_for(self, key: LockKey) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, keys: Iterable[LockKey]) -> Iterator[List[LockKey]]:
        ordered = sorted(set(keys))
        acquired: List[threading.RLock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()


ledger_locks = LockRegistry()
