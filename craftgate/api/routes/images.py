from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from craftgate.adapters.rate_limit.base import RateLimitResult
from craftgate.core.auth import verify_api_key
from craftgate.core.config import settings
from craftgate.core.rate_limit import (
    enforce_image_generation_rate_limit,
    image_rate_limit_status,
)
from craftgate.schemas.rate_limit import RateLimitStatusResponse

router = APIRouter(tags=["Images"], dependencies=[Depends(verify_api_key)])


def _set_quota_headers(response: Response, result: RateLimitResult) -> None:
    if not settings.app.rate_limit_include_headers:
        return
    response.headers["X-RateLimit-Limit"] = str(result.limit)
    response.headers["X-RateLimit-Remaining"] = str(result.remaining)
    response.headers["X-RateLimit-Reset"] = str(result.reset_time)


@router.get("/images/rate-limit", response_model=RateLimitStatusResponse)
async def get_image_rate_limit(
    response: Response,
    result: Annotated[RateLimitResult, Depends(image_rate_limit_status)],
) -> RateLimitStatusResponse:
    """Report the caller's image generation quota.

    Read-only: calling this any number of times never changes whether the
    next generation request is accepted.
    """
    _set_quota_headers(response, result)
    return RateLimitStatusResponse.from_result(result)


@router.post("/images/rate-limit/consume", response_model=RateLimitStatusResponse)
async def consume_image_generation(
    response: Response,
    result: Annotated[RateLimitResult, Depends(enforce_image_generation_rate_limit)],
) -> RateLimitStatusResponse:
    """Claim one image generation from the caller's quota.

    The image generator calls this right before starting an expensive
    generation. Over-quota callers get a 429 with ``Retry-After``.
    """
    _set_quota_headers(response, result)
    return RateLimitStatusResponse.from_result(result)
