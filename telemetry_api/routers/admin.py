"""Admin endpoints: record counts, volume trends and collection cleanup."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..context import AppContext, get_context
from .telemetry import respond

router = APIRouter(prefix="/services/v1/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Counts
# ---------------------------------------------------------------------------

@router.get("/metrics/telemetry/total/all")
async def total_all(ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.count_all())


@router.get("/metrics/telemetry/total/{device_id}")
async def total_by_device(device_id: str, ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.count_by_device(device_id))


@router.get("/metrics/telemetry/total/{device_id}/{from_ts}/{to_ts}")
async def total_by_device_range(device_id: str, from_ts: str, to_ts: str, ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.count_by_device_range(device_id, from_ts, to_ts))


# ---------------------------------------------------------------------------
# Trends ("all" and "by" are declared before the bare limit route)
# ---------------------------------------------------------------------------

@router.get("/metrics/trend/telemetry/all")
async def trend_all(ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.trend_all())


@router.get("/metrics/trend/telemetry/by/{device_id}")
async def trend_by_device(device_id: str, ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.trend_by_device(device_id))


@router.get("/metrics/trend/telemetry/by/{device_id}/{n_limit}")
async def trend_by_device_top_n(device_id: str, n_limit: str, ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.trend_by_device_top_n(device_id, n_limit))


@router.get("/metrics/trend/telemetry/{n_limit}")
async def trend_top_n(n_limit: str, ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.trend_top_n(n_limit))


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------

@router.post("/cleanup/telemetry")
async def cleanup(ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.drop_all())
