"""Process-wide wiring of the SMS admission controller.

This module builds the counter store and the rate limiter service from
settings and exposes them as FastAPI dependencies.

Design goals:
- Minimal coupling: API routes depend on dependency functions only.
- Swap-friendly: the store backend is chosen by the factory.
- One shared store per process: the Redis connection pool is reused by every
  request and closed on application shutdown.
"""

from __future__ import annotations

import logging

from app.adapters.counter_store.base import AbstractCounterStore
from app.adapters.counter_store.factory import create_counter_store
from app.core.config import settings
from app.services.rate_limiter_service import RateLimiterService, RateLimitKeys

logger = logging.getLogger(__name__)


_store: AbstractCounterStore | None = None
_store_config: tuple | None = None
# Stores replaced after a settings change; closed with the current one on shutdown
_retired_stores: list[AbstractCounterStore] = []
_service: RateLimiterService | None = None
_service_config: tuple | None = None


def _current_store_config() -> tuple:
    cfg = settings.store
    return (
        cfg.backend,
        cfg.redis_url,
        cfg.socket_timeout_seconds,
        cfg.connect_timeout_seconds,
        cfg.max_connections,
    )


def _current_service_config() -> tuple:
    cfg = settings.rate_limiter
    return (
        cfg.max_per_number,
        cfg.max_per_account,
        cfg.window_seconds,
        cfg.cooldown_seconds,
        cfg.cooldown_priority,
        cfg.number_key_prefix,
        cfg.account_key,
        cfg.cooldown_key_prefix,
    )


def get_counter_store() -> AbstractCounterStore:
    """Return the process-wide counter store.

    The instance is cached in-module so its connection pool is shared across
    requests. If store settings change (primarily in tests), it is rebuilt;
    the replaced store is retired and closed by ``close_counter_store``.
    """

    global _store, _store_config

    config = _current_store_config()
    if _store is None or _store_config != config:
        if _store is not None:
            _retired_stores.append(_store)
        _store = create_counter_store(settings.store)
        _store_config = config

    return _store


def get_rate_limiter_service() -> RateLimiterService:
    """Return the process-wide rate limiter service.

    Returns:
        RateLimiterService: Controller bound to the shared counter store.
    """

    global _service, _service_config

    store = get_counter_store()
    cfg = settings.rate_limiter
    config = (id(store), *_current_service_config())

    if _service is None or _service_config != config:
        _service = RateLimiterService(
            store,
            max_per_number=cfg.max_per_number,
            max_per_account=cfg.max_per_account,
            window_seconds=cfg.window_seconds,
            cooldown_seconds=cfg.cooldown_seconds,
            cooldown_priority=cfg.cooldown_priority,
            keys=RateLimitKeys(
                number_prefix=cfg.number_key_prefix,
                account=cfg.account_key,
                cooldown_prefix=cfg.cooldown_key_prefix,
            ),
        )
        _service_config = config
        logger.info(
            "rate_limiter.configured",
            extra={
                "backend": store.backend,
                "max_per_number": cfg.max_per_number,
                "max_per_account": cfg.max_per_account,
                "window_s": cfg.window_seconds,
                "cooldown_s": cfg.cooldown_seconds,
                "cooldown_priority": str(getattr(cfg.cooldown_priority, "value", cfg.cooldown_priority)),
            },
        )

    return _service


async def close_counter_store() -> None:
    """Close the shared store and any retired ones, then forget cached instances."""

    global _store, _store_config, _service, _service_config

    stores = [*_retired_stores, *([_store] if _store is not None else [])]
    _retired_stores.clear()
    _store = _store_config = _service = _service_config = None
    for store in stores:
        await store.close()
        logger.info("store.closed", extra={"backend": store.backend})
