"""SMS admission endpoint.

A thin mapping from HTTP to ``RateLimiterService``: validate the phone
number, run the admission check and translate the decision into 200 or 429.
"""

from __future__ import annotations

import logging
import math
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import ValidationAppError
from app.core.rate_limit import get_rate_limiter_service
from app.schemas.sms import CanSendResponse
from app.services.rate_limiter_service import RateLimiterService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sms", tags=["SMS"])

RATE_LIMITED_MESSAGE = "Rate limit exceeded. Try again later."


@router.post(
    "/can-send",
    response_model=CanSendResponse,
    response_model_exclude_none=True,
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Phone number missing or blank."},
        status.HTTP_429_TOO_MANY_REQUESTS: {
            "model": CanSendResponse,
            "description": "Per-number or per-account quota exceeded, or cooldown active.",
        },
    },
)
async def can_send_message(
    phone_number: Annotated[
        str | None,
        Query(alias="phoneNumber", description="Destination phone number."),
    ] = None,
    service: RateLimiterService = Depends(get_rate_limiter_service),
) -> JSONResponse:
    """Check whether a message may be sent to ``phoneNumber`` right now.

    Returns:
        200 with ``{"isCanSend": true}`` when allowed, 429 with
        ``{"isCanSend": false, "message": ...}`` when rejected.

    Raises:
        ValidationAppError: When the phone number is missing or blank (400).
    """
    phone_number = (phone_number or "").strip()
    if not phone_number:
        logger.warning("sms.can_send.empty_phone_number")
        raise ValidationAppError(
            code="phone_number_required",
            message="Phone number is required",
            details={"hint": "Pass the number as the phoneNumber query parameter"},
        )

    decision = await service.evaluate(phone_number)

    if decision.allowed:
        body = CanSendResponse(is_can_send=True)
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=body.model_dump(by_alias=True, exclude_none=True),
        )

    headers: dict[str, str] = {}
    if settings.rate_limiter.include_headers and decision.retry_after_seconds is not None:
        headers["Retry-After"] = str(max(1, math.ceil(decision.retry_after_seconds)))

    body = CanSendResponse(is_can_send=False, message=RATE_LIMITED_MESSAGE)
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers or None,
    )
