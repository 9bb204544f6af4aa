"""Factory for creating the counter store configured for this process."""

from __future__ import annotations

import logging

from app.adapters.counter_store.base import AbstractCounterStore
from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.adapters.counter_store.redis_store import RedisCounterStore
from app.core.config import StoreBackend, StoreSettings, settings
from app.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


def create_counter_store(store_settings: StoreSettings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store backend selected in settings.

    Args:
        store_settings: Optional store settings; defaults to global settings.

    Returns:
        AbstractCounterStore: Configured store. Redis connections are opened
            lazily on first use.

    Raises:
        ValidationAppError: If the backend is not supported.
    """
    cfg = store_settings or settings.store
    backend = str(getattr(cfg.backend, "value", cfg.backend)).lower()

    if backend == StoreBackend.REDIS.value:
        logger.info(
            "store.created",
            extra={"backend": backend, "max_connections": cfg.max_connections},
        )
        return RedisCounterStore.from_url(
            cfg.redis_url,
            socket_timeout=cfg.socket_timeout_seconds,
            connect_timeout=cfg.connect_timeout_seconds,
            max_connections=cfg.max_connections,
        )

    if backend == StoreBackend.MEMORY.value:
        logger.warning(
            "store.created",
            extra={
                "backend": backend,
                "hint": "in-memory quotas are per process; use redis with multiple workers",
            },
        )
        return InMemoryCounterStore()

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown counter store backend: '{cfg.backend}'. Supported: redis, memory",
    )
