from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.adapters.counter_store.base import AbstractCounterStore
from app.core.rate_limit import get_counter_store

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(
    store: AbstractCounterStore = Depends(get_counter_store),
) -> JSONResponse:
    """Readiness check: the shared counter store must answer a ping.

    Returns 503 while the store is unreachable, since every admission check
    would fail closed in that state.
    """

    if await store.ping():
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ok", "store": store.backend},
        )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "unavailable", "store": store.backend},
    )
