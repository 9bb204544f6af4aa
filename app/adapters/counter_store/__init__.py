"""Shared counter store adapters.

The admission controller depends only on ``AbstractCounterStore`` so the
backend (Redis in production, in-memory for single-process runs and tests)
can be swapped without touching the decision logic.
"""

from app.adapters.counter_store.base import AbstractCounterStore
from app.adapters.counter_store.factory import create_counter_store
from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.adapters.counter_store.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "create_counter_store",
]
