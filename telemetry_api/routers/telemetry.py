"""Telemetry write and read endpoints.

Endpoints:
- POST /services/v1/telemetry - Insert one client-supplied record
- POST /services/v1/telemetry/batch - Insert a client-supplied list
- POST /services/v1/simulation/telemetry/:nTimes - Generate and insert nTimes records
- GET /services/v1/telemetry - All records (capped)
- GET /services/v1/telemetry/latest/:deviceId/:nLimit - Most recent nLimit records of a device
- GET /services/v1/telemetry/range/:deviceId/:fromTS/:toTS - Records of a device in a time window
"""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from ..context import AppContext, get_context

router = APIRouter(prefix="/services/v1", tags=["telemetry"])


def respond(envelope: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=envelope["status"], content=envelope)


@router.post("/telemetry")
async def insert_one(payload: dict[str, Any] = Body(...), ctx: AppContext = Depends(get_context)):
    return respond(await ctx.ingestion.ingest_one(payload))


@router.post("/telemetry/batch")
async def insert_many(payload: list[dict[str, Any]] = Body(...), ctx: AppContext = Depends(get_context)):
    return respond(await ctx.ingestion.ingest_records(payload))


@router.post("/simulation/telemetry/{n_times}")
async def simulate(n_times: str, ctx: AppContext = Depends(get_context)):
    return respond(await ctx.ingestion.ingest(n_times))


@router.get("/telemetry")
async def get_all(ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.get_all())


@router.get("/telemetry/latest/{device_id}/{n_limit}")
async def get_latest(device_id: str, n_limit: str, ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.get_by_device_limit(device_id, n_limit))


@router.get("/telemetry/range/{device_id}/{from_ts}/{to_ts}")
async def get_range(device_id: str, from_ts: str, to_ts: str, ctx: AppContext = Depends(get_context)):
    return respond(await ctx.queries.get_by_device_range(device_id, from_ts, to_ts))
