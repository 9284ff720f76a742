"""API routes for quota availability and invocations."""

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from quotagate.errors import ConnectionFailureError, QuotaExceededError, UnknownTaskError
from quotagate.layer import InvocationLayer
from quotagate.layer import get_layer as get_default_layer
from quotagate.tiers import ModelTier, TierPreference

logger = logging.getLogger(__name__)
router = APIRouter()


def get_layer(request: Request) -> InvocationLayer:
    """Layer attached to the app, or the process-wide default."""
    layer = getattr(request.app.state, "layer", None)
    if layer is None:
        layer = get_default_layer()
        request.app.state.layer = layer
    return layer


def format_sse_event(data: Any, event: str | None = None) -> str:
    """
    Format a Server-Sent Event.

    Args:
        data: Event data (JSON encoded if not a string)
        event: Optional event type

    Returns:
        Formatted SSE string
    """
    lines = []
    if event is not None:
        lines.append(f"event: {event}")

    data_str = data if isinstance(data, str) else json.dumps(data)
    for line in data_str.split("\n"):
        lines.append(f"data: {line}")

    return "\n".join(lines) + "\n\n"


# --- Request/Response Models ---

class InvokeRequest(BaseModel):
    """Generation request for a logical task."""

    task: str = Field(..., description="Registered task name")
    preference: str = Field(default="auto", description="auto, primary, secondary (or pro/flash)")
    payload: Any = Field(default=None, description="Request contents, also the cache key")
    retry_budget: int | None = Field(default=None, ge=1, description="Attempts override")


class InvokeResponse(BaseModel):
    """Generated text and how it was served."""

    text: str
    tier: str
    model_id: str
    cached: bool
    attempts: int
    usage: dict[str, Any] = Field(default_factory=dict)


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str


# --- Routes ---

async def _quota_overview(layer: InvocationLayer) -> dict[str, Any]:
    snapshots = await layer.ledger.snapshot_all()
    return {
        "tiers": {tier.value: snap.to_dict() for tier, snap in snapshots.items()},
        "total_tokens": await layer.ledger.total_tokens_consumed(),
        "tokens_saved": await layer.ledger.total_tokens_saved(),
        "prefer_secondary": await layer.ledger.should_prefer_secondary(),
    }


@router.get("/quota")
async def get_quota(layer: InvocationLayer = Depends(get_layer)) -> dict[str, Any]:
    """Availability of every tier plus token counters."""
    return await _quota_overview(layer)


async def quota_event_stream(
    layer: InvocationLayer,
    max_events: int | None = None,
) -> AsyncIterator[str]:
    """
    Yield an initial overview, then one SSE message per ledger mutation.

    Each mutation message carries the refreshed snapshot of its tier.
    The listener opens before the overview is built, so a mutation
    landing in between is still delivered.
    """
    sent = 0
    async with aclosing(layer.notifier.listen()) as events:
        yield format_sse_event(await _quota_overview(layer), event="snapshot")

        async for quota_event in events:
            snapshot = await layer.ledger.availability(quota_event.tier)
            yield format_sse_event(
                {**quota_event.to_dict(), "availability": snapshot.to_dict()},
                event="quota",
            )
            sent += 1
            if max_events is not None and sent >= max_events:
                break


@router.get("/quota/events")
async def stream_quota_events(
    max_events: int | None = Query(default=None, ge=1),
    layer: InvocationLayer = Depends(get_layer),
) -> StreamingResponse:
    """Server-Sent Events stream of ledger mutations."""
    return StreamingResponse(
        quota_event_stream(layer, max_events),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/quota/{tier}")
async def get_tier_quota(tier: str, layer: InvocationLayer = Depends(get_layer)) -> dict[str, Any]:
    """Availability of one tier."""
    try:
        model_tier = ModelTier(TierPreference.parse(tier).value)
    except ValueError:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown tier: {tier}. Available: {[t.value for t in ModelTier]}",
        )
    snapshot = await layer.ledger.availability(model_tier)
    return snapshot.to_dict()


@router.get("/tokens")
async def get_tokens(layer: InvocationLayer = Depends(get_layer)) -> dict[str, int]:
    return {
        "total_tokens": await layer.ledger.total_tokens_consumed(),
        "tokens_saved": await layer.ledger.total_tokens_saved(),
    }


@router.post("/invoke", response_model=InvokeResponse)
async def invoke(request: InvokeRequest, layer: InvocationLayer = Depends(get_layer)):
    """
    Run a task through the invocation layer.

    Quota failures map to 429 with Retry-After, connection failures to 502.
    """
    try:
        preference = TierPreference.parse(request.preference)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        result = await layer.invoker.invoke_with_details(
            request.task,
            preference=preference,
            payload=request.payload,
            retry_budget=request.retry_budget,
        )
    except UnknownTaskError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except QuotaExceededError as e:
        retry_after = e.retry_after
        if retry_after is None:
            retry_after = (await layer.ledger.availability(e.tier)).next_available_in_seconds
        return JSONResponse(
            status_code=429,
            content={
                "detail": str(e),
                "tier": e.tier.value,
                "retry_after": retry_after,
                "provider_confirmed": e.provider_confirmed,
            },
            headers={"Retry-After": str(int(retry_after))},
        )
    except ConnectionFailureError as e:
        logger.error(f"Invocation of {request.task} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return InvokeResponse(**result.to_dict())


@router.get("/connection/test", response_model=ConnectionTestResponse)
async def connection_test(layer: InvocationLayer = Depends(get_layer)):
    """Single-attempt provider reachability check."""
    check = await layer.invoker.test_connection()
    return ConnectionTestResponse(**check.to_dict())
