"""Pydantic schemas for image generation quota responses."""

from __future__ import annotations

from pydantic import BaseModel, Field

from craftgate.adapters.rate_limit.base import RateLimitResult


class RateLimitStatusResponse(BaseModel):
    """Caller's image generation quota for the current window."""

    allowed: bool = Field(
        ...,
        description="Whether an image generation request would be (or was) accepted.",
    )
    limit: int = Field(..., ge=0, description="Image generations allowed per window.")
    remaining: int = Field(
        ..., ge=0, description="Image generations left in the current window."
    )
    reset_time: int = Field(
        ...,
        description="Epoch milliseconds when the current window ends.",
    )

    @classmethod
    def from_result(cls, result: RateLimitResult) -> "RateLimitStatusResponse":
        return cls(
            allowed=result.allowed,
            limit=result.limit,
            remaining=result.remaining,
            reset_time=result.reset_time,
        )
