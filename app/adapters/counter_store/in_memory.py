"""In-memory counter store.

Notes:
- Per-process only: running multiple workers gives each worker its own quota.
- Thread-safe: uses a lock around shared state, so the dual increment is
  atomic with respect to every other caller in the process.
"""

from __future__ import annotations

import threading
import time
import uuid
from typing import Callable

from app.adapters.counter_store.base import AbstractCounterStore


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping flags and windowed collections in dicts.

    Intended for local development and tests. Expiry is evaluated lazily
    against the injected clock, which makes time-based behaviour
    deterministic under a fake clock.
    """

    backend = "memory"

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._flags: dict[str, float] = {}
        # key -> {member_id: attempt_time}
        self._collections: dict[str, dict[str, float]] = {}
        # key -> collection expiry time
        self._collection_expiry: dict[str, float] = {}

    def _prune_locked(self, key: str, now: float, window_seconds: float) -> dict[str, float]:
        expires_at = self._collection_expiry.get(key)
        if expires_at is not None and expires_at <= now:
            self._collections.pop(key, None)
            self._collection_expiry.pop(key, None)
            return {}

        members = self._collections.get(key)
        if not members:
            return {}

        cutoff = now - window_seconds
        for member_id in [m for m, ts in members.items() if ts <= cutoff]:
            del members[member_id]
        if not members:
            self._collections.pop(key, None)
            self._collection_expiry.pop(key, None)
        return members

    async def is_flag_set(self, key: str) -> bool:
        with self._lock:
            expires_at = self._flags.get(key)
            if expires_at is None:
                return False
            if expires_at <= self._clock():
                del self._flags[key]
                return False
            return True

    async def set_flag(self, key: str, ttl_seconds: float) -> None:
        with self._lock:
            self._flags[key] = self._clock() + ttl_seconds

    async def cardinality(self, key: str, *, now: float, window_seconds: float) -> int:
        with self._lock:
            return len(self._prune_locked(key, now, window_seconds))

    async def try_atomic_dual_increment(
        self,
        identity_key: str,
        scope_key: str,
        *,
        identity_cap: int,
        scope_cap: int,
        now: float,
        window_seconds: float,
    ) -> bool:
        with self._lock:
            identity_members = self._prune_locked(identity_key, now, window_seconds)
            scope_members = self._prune_locked(scope_key, now, window_seconds)
            if len(identity_members) >= identity_cap or len(scope_members) >= scope_cap:
                return False

            member_id = f"{int(now * 1000)}-{uuid.uuid4().hex[:8]}"
            for key in (identity_key, scope_key):
                self._collections.setdefault(key, {})[member_id] = now
                self._collection_expiry[key] = now + window_seconds
            return True
