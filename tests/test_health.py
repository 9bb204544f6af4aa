"""Tests for liveness and readiness endpoints."""

from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from app.adapters.counter_store.base import AbstractCounterStore
from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.core.rate_limit import get_counter_store
from app.main import app

client = TestClient(app)


def test_liveness() -> None:
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_ready_when_store_answers() -> None:
    app.dependency_overrides[get_counter_store] = lambda: InMemoryCounterStore()
    try:
        resp = client.get("/health/ready")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "store": "memory"}


def test_not_ready_when_store_unreachable() -> None:
    store = AsyncMock(spec=AbstractCounterStore)
    store.backend = "redis"
    store.ping.return_value = False
    app.dependency_overrides[get_counter_store] = lambda: store
    try:
        resp = client.get("/health/ready")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 503
    assert resp.json() == {"status": "unavailable", "store": "redis"}
