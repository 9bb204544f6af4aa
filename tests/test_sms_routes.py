"""Tests for the SMS admission endpoint."""

import pytest
from fastapi.testclient import TestClient

from app.adapters.counter_store.in_memory import InMemoryCounterStore
from app.core.errors import StoreAppError
from app.core.rate_limit import get_rate_limiter_service
from app.main import app
from app.services.rate_limiter_service import RateLimiterService

URL = "/api/sms/can-send"


@pytest.fixture
def service(clock) -> RateLimiterService:
    store = InMemoryCounterStore(clock=clock)
    return RateLimiterService(store, max_per_number=3, max_per_account=5, clock=clock)


@pytest.fixture
def client(service: RateLimiterService):
    app.dependency_overrides[get_rate_limiter_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_allowed_returns_200(client: TestClient) -> None:
    resp = client.post(URL, params={"phoneNumber": "123456789"})

    assert resp.status_code == 200
    assert resp.json() == {"isCanSend": True}


def test_number_limit_returns_429_with_retry_after(client: TestClient) -> None:
    for _ in range(3):
        assert client.post(URL, params={"phoneNumber": "123"}).status_code == 200

    resp = client.post(URL, params={"phoneNumber": "123"})

    assert resp.status_code == 429
    assert resp.json() == {
        "isCanSend": False,
        "message": "Rate limit exceeded. Try again later.",
    }
    assert resp.headers["Retry-After"] == "1"


def test_account_limit_blocks_new_numbers(client: TestClient) -> None:
    for number in ("111", "222", "333", "444", "555"):
        assert client.post(URL, params={"phoneNumber": number}).status_code == 200

    assert client.post(URL, params={"phoneNumber": "666"}).status_code == 429
    assert client.post(URL, params={"phoneNumber": "777"}).status_code == 429


def test_recovers_after_cooldown(client: TestClient, clock) -> None:
    for _ in range(4):
        client.post(URL, params={"phoneNumber": "123"})

    clock.advance(1.1)

    assert client.post(URL, params={"phoneNumber": "123"}).status_code == 200


def test_phone_number_is_trimmed(client: TestClient) -> None:
    for _ in range(3):
        client.post(URL, params={"phoneNumber": " 123 "})

    assert client.post(URL, params={"phoneNumber": "123"}).status_code == 429


@pytest.mark.parametrize("params", [{}, {"phoneNumber": ""}, {"phoneNumber": "   "}])
def test_missing_phone_number_returns_400(client: TestClient, params: dict) -> None:
    resp = client.post(URL, params=params)

    assert resp.status_code == 400
    error = resp.json()["error"]
    assert error["code"] == "phone_number_required"
    assert error["message"] == "Phone number is required"
    assert error["request_id"]


def test_store_outage_returns_429_not_500(clock) -> None:
    class _DownStore(InMemoryCounterStore):
        async def is_flag_set(self, key: str) -> bool:
            raise StoreAppError(code="store_unavailable", message="down")

    service = RateLimiterService(_DownStore(clock=clock), max_per_number=3, max_per_account=5, clock=clock)
    app.dependency_overrides[get_rate_limiter_service] = lambda: service
    try:
        resp = TestClient(app).post(URL, params={"phoneNumber": "123"})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 429
    assert resp.json()["isCanSend"] is False


def test_retry_after_omitted_when_headers_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    from app.core.config import settings

    monkeypatch.setattr(settings.rate_limiter, "include_headers", False)
    for _ in range(3):
        client.post(URL, params={"phoneNumber": "123"})

    resp = client.post(URL, params={"phoneNumber": "123"})

    assert resp.status_code == 429
    assert "Retry-After" not in resp.headers


def test_openapi_documents_retry_after(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    responses = schema["paths"][URL]["post"]["responses"]
    assert "Retry-After" in responses["429"]["headers"]
    assert {t["name"] for t in schema["tags"]} >= {"SMS", "Health"}
