# artmarket/registry/locks.py
"""
Mutual exclusion for registry operations.

Operations on one asset are serialized; operations on different assets run
side by side. In "global" mode every asset shares one lock.
"""

import threading
from contextlib import ExitStack, contextmanager
from typing import Dict, Iterator

PER_ASSET = "per_asset"
GLOBAL = "global"

LOCK_MODES = (PER_ASSET, GLOBAL)


class AssetLocks:
    """
    Table of re-entrant locks keyed by asset id.

    A lock is registered when its asset is minted (or restored). Ids that
    were never registered have no lock; operations on them fail with
    NotFound before touching any state.
    """

    def __init__(self, mode: str = PER_ASSET):
        if mode not in LOCK_MODES:
            raise ValueError(f"Unknown lock mode: {mode!r} (expected one of {LOCK_MODES})")
        self.mode = mode
        self._table_lock = threading.Lock()
        self._locks: Dict[int, threading.RLock] = {}
        self._global = threading.RLock() if mode == GLOBAL else None

    def register(self, asset_id: int) -> threading.RLock:
        """Create (or return) the lock guarding an asset."""
        if self._global is not None:
            return self._global
        with self._table_lock:
            lock = self._locks.get(asset_id)
            if lock is None:
                lock = self._locks[asset_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, asset_id: int) -> Iterator[bool]:
        """
        Hold the lock of one asset.

        Yields False without locking when the id was never registered.
        """
        if self._global is not None:
            with self._global:
                yield True
            return

        with self._table_lock:
            lock = self._locks.get(asset_id)
        if lock is None:
            yield False
            return
        with lock:
            yield True

    @contextmanager
    def hold_all(self) -> Iterator[None]:
        """Hold every registered lock, acquired in id order."""
        if self._global is not None:
            with self._global:
                yield
            return

        with self._table_lock:
            locks = [self._locks[k] for k in sorted(self._locks)]
        with ExitStack() as stack:
            for lock in locks:
                stack.enter_context(lock)
            yield

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._locks)
