"""API routes for Prayer Companion.

- /prayers/generate: cache-first prayer generation. Requests sharing a
  ``session_id`` are last-request-wins: a new one cancels the previous.
- /prayers/cache: inspect or clear the prayer cache
- /community/prayers: the community prayer wall
"""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from prayer_companion.models import (
    AppError,
    CacheStats,
    ErrorCode,
    FetchCancelled,
    GroundingSource,
    InvalidResponse,
    LoadingPhase,
    Prayer,
    PrayerFetchError,
    PrayerRequest,
    RecoveryOption,
    Tradition,
    TransientFailure,
)
from prayer_companion.services import CommunityPrayerService, PrayerFetcher
from prayer_companion.services.community import (
    AlreadyPrayed,
    InvalidPrayerRequest,
    PrayerNotFound,
    RateLimitExceeded,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ─── Request / response models ───

class GeneratePrayersRequest(BaseModel):
    """Request model for prayer generation."""
    tradition: Tradition
    situation: str = Field(..., min_length=1, max_length=500)
    session_id: Optional[str] = Field(
        None, max_length=100, description="Client session; a newer request cancels the older one"
    )


class GeneratePrayersResponse(BaseModel):
    """Response model for prayer generation."""
    success: bool
    prayers: list[Prayer] = Field(default_factory=list)
    sources: list[GroundingSource] = Field(default_factory=list)
    served_from_cache: bool = False
    phases: list[LoadingPhase] = Field(default_factory=list)
    error: Optional[AppError] = None


class CacheStatsResponse(BaseModel):
    """Response model for cache statistics."""
    success: bool
    stats: CacheStats
    hit_rate: float


class SubmitPrayerRequest(BaseModel):
    """Request model for posting to the prayer wall."""
    intention: str = ""
    religion: str = ""


class PrayerListResponse(BaseModel):
    success: bool
    prayers: list[PrayerRequest]
    total: int


class SubmitPrayerResponse(BaseModel):
    success: bool
    prayer: Optional[PrayerRequest] = None
    remaining: int = 0
    error: Optional[AppError] = None


class PrayResponse(BaseModel):
    success: bool
    prayer_count: int = 0
    error: Optional[AppError] = None


# ─── Dependencies ───

def get_prayer_fetcher(request: Request) -> PrayerFetcher:
    return request.app.state.prayer_fetcher


def get_community_service(request: Request) -> CommunityPrayerService:
    return request.app.state.community_service


def get_client_id(request: Request) -> str:
    """Identify the caller: first X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _error_response(
    status_code: int,
    code: ErrorCode,
    message: str,
    user_message: str,
    recovery_options: list[RecoveryOption] | None = None,
    **extra,
) -> JSONResponse:
    error = AppError(
        code=code,
        message=message,
        user_message=user_message,
        recovery_options=recovery_options or [],
    )
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error.model_dump(mode="json"), **extra},
    )


# ─── Prayer generation ───

@router.get("/traditions")
async def list_traditions() -> dict:
    """List the traditions prayers can be generated for."""
    return {"traditions": [t.value for t in Tradition]}


@router.post("/prayers/generate", response_model=GeneratePrayersResponse)
async def generate_prayers(
    body: GeneratePrayersRequest,
    fetcher: PrayerFetcher = Depends(get_prayer_fetcher),
):
    """Generate (or recall from cache) three prayers for a situation."""
    phases: list[LoadingPhase] = []
    session_id = body.session_id or uuid4().hex
    token = fetcher.sessions.begin(session_id)
    try:
        result = await fetcher.fetch_prayers(
            body.tradition.value,
            body.situation,
            on_phase_change=phases.append,
            cancel_token=token,
        )
    except FetchCancelled as e:
        return _error_response(
            status.HTTP_409_CONFLICT,
            ErrorCode.CANCELLED,
            str(e),
            e.user_message,
            phases=[p.value for p in phases],
        )
    except InvalidResponse as e:
        return _error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            ErrorCode.INVALID_RESPONSE,
            str(e),
            e.user_message,
            [RecoveryOption(label="Rephrase your situation", action="edit_input")],
        )
    except TransientFailure as e:
        return _error_response(
            status.HTTP_502_BAD_GATEWAY,
            ErrorCode.TRANSIENT_FAILURE,
            str(e),
            e.user_message,
            [RecoveryOption(label="Try again", action="retry")],
        )
    except PrayerFetchError as e:
        return _error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, e.code, str(e), e.user_message
        )
    finally:
        fetcher.sessions.finish(session_id, token)

    return GeneratePrayersResponse(
        success=True,
        prayers=result.prayers,
        sources=result.sources,
        served_from_cache=result.served_from_cache,
        phases=phases,
    )


@router.get("/prayers/cache/stats", response_model=CacheStatsResponse)
async def prayer_cache_stats(
    fetcher: PrayerFetcher = Depends(get_prayer_fetcher),
) -> CacheStatsResponse:
    stats = fetcher.cache.stats
    return CacheStatsResponse(success=True, stats=stats, hit_rate=stats.hit_rate)


@router.delete("/prayers/cache")
async def clear_prayer_cache(
    fetcher: PrayerFetcher = Depends(get_prayer_fetcher),
) -> dict:
    await fetcher.cache.clear()
    logger.info("[API] Prayer cache cleared")
    return {"success": True}


# ─── Community prayer wall ───

@router.get("/community/prayers", response_model=PrayerListResponse)
async def list_community_prayers(
    community: CommunityPrayerService = Depends(get_community_service),
) -> PrayerListResponse:
    prayers, total = await community.list_requests()
    return PrayerListResponse(success=True, prayers=prayers, total=total)


@router.post(
    "/community/prayers",
    response_model=SubmitPrayerResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_community_prayer(
    body: SubmitPrayerRequest,
    client_id: str = Depends(get_client_id),
    community: CommunityPrayerService = Depends(get_community_service),
):
    try:
        prayer, remaining = await community.submit(client_id, body.intention, body.religion)
    except InvalidPrayerRequest as e:
        return _error_response(
            status.HTTP_400_BAD_REQUEST,
            ErrorCode.INVALID_INPUT,
            str(e),
            str(e),
        )
    except RateLimitExceeded as e:
        return _error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            ErrorCode.RATE_LIMITED,
            str(e),
            str(e),
            remaining=0,
        )
    return SubmitPrayerResponse(success=True, prayer=prayer, remaining=remaining)


@router.post("/community/prayers/{prayer_id}/pray", response_model=PrayResponse)
async def pray_for_community_prayer(
    prayer_id: str,
    client_id: str = Depends(get_client_id),
    community: CommunityPrayerService = Depends(get_community_service),
):
    try:
        count = await community.pray_for(client_id, prayer_id)
    except AlreadyPrayed as e:
        return _error_response(
            status.HTTP_429_TOO_MANY_REQUESTS,
            ErrorCode.ALREADY_PRAYED,
            str(e),
            str(e),
            already_prayed=True,
        )
    except PrayerNotFound as e:
        return _error_response(
            status.HTTP_404_NOT_FOUND,
            ErrorCode.NOT_FOUND,
            str(e),
            "Prayer not found",
        )
    return PrayResponse(success=True, prayer_count=count)
