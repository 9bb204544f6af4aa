"""Pydantic schemas for SMS admission responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CanSendResponse(BaseModel):
    """Result of an admission check, serialized with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    is_can_send: bool = Field(
        ...,
        alias="isCanSend",
        description="Whether a message may be sent to the number right now.",
    )
    message: str | None = Field(
        default=None,
        description="Human-readable explanation when the send is rejected.",
    )
