"""Mutual exclusion per (asset, pool) scope.

Concurrent operations on one scope would double-count fees and race on
position sizing, so at most one may be in flight.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Iterator

from flashlev.errors import OperationInFlight

logger = logging.getLogger(__name__)

Scope = tuple[str, str]


@dataclass
class ScopeLocks:
    """Thread-safe registry of one lock per scope."""

    _locks: dict[Scope, Lock] = field(default_factory=dict)
    _registry_lock: Lock = field(default_factory=Lock)

    def _normalize(self, scope: Scope) -> Scope:
        asset, pool = scope
        return (asset.lower(), pool.lower())

    def _lock_for(self, scope: Scope) -> Lock:
        key = self._normalize(scope)
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            return lock

    def acquire(self, scope: Scope, *, wait_seconds: float = 0.0) -> Lock:
        """Acquire the scope lock or fail.

        Args:
            scope: (asset, pool) addresses
            wait_seconds: 0 fails fast; otherwise block up to this long

        Raises:
            OperationInFlight: If another operation holds the scope.
        """
        lock = self._lock_for(scope)
        acquired = lock.acquire(timeout=wait_seconds) if wait_seconds > 0 else lock.acquire(blocking=False)
        if not acquired:
            raise OperationInFlight(f"An operation is already in flight for asset {scope[0]} / pool {scope[1]}")
        return lock

    @contextmanager
    def hold(self, scope: Scope, *, wait_seconds: float = 0.0) -> Iterator[Lock]:
        lock = self.acquire(scope, wait_seconds=wait_seconds)
        try:
            yield lock
        finally:
            lock.release()

    def is_busy(self, scope: Scope) -> bool:
        with self._registry_lock:
            lock = self._locks.get(self._normalize(scope))
        return lock is not None and lock.locked()

    def busy_scopes(self) -> list[Scope]:
        with self._registry_lock:
            return [scope for scope, lock in self._locks.items() if lock.locked()]
