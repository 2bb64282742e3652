"""Time-range, per-device and trend queries over stored telemetry.

Every public coroutine returns a response envelope. Out-of-range limits are
clamped; bounds and limits that cannot be parsed as numbers are rejected
before the store is touched.
"""
from __future__ import annotations

import logging
import math
from typing import Any

from ..config import Settings
from ..envelope import client_error, empty, internal_error, ok
from ..errors import ClientError, StorageError
from ..storage import StorageGateway

logger = logging.getLogger(__name__)

LIMIT_FLOOR = 1
LIMIT_CEILING = 9999
COLLECTION = "telemetry"

READ_FAILED = "Cannot read telemetry data points due to internal system error"
COUNT_FAILED = "Telemetry metrics update failed due to internal system error"
TREND_FAILED = "Cannot extract telemetry metrics trending due to internal system error"
TREND_OK = "Telemetry metrics trending updated successfully."
COUNT_OK = "Telemetry metrics updated successfully."


def _parse_number(raw: Any, name: str) -> float:
    """Parse a query number; decimals are accepted, anything non-finite is not."""
    if isinstance(raw, bool):
        raise ClientError(f"Please enter a valid number ({name})")
    if isinstance(raw, int):
        return raw
    try:
        value = float(str(raw).strip())
    except ValueError:
        raise ClientError(f"Please enter a valid number ({name})") from None
    if not math.isfinite(value):
        raise ClientError(f"Please enter a valid number ({name})")
    return value


def clamp_limit(raw: Any, name: str = "nLimit") -> int:
    """Coerce a limit into [1, 9999], truncating decimals. Idempotent."""
    value = int(_parse_number(raw, name))
    return max(LIMIT_FLOOR, min(LIMIT_CEILING, value))


def parse_bound(raw: Any, name: str) -> int:
    """Parse a Unix-second time bound, truncated to whole seconds; non-numeric or negative is rejected."""
    value = _parse_number(raw, name)
    if value < 0:
        raise ClientError(f"Please enter a valid number ({name})")
    return int(value)


class TelemetryQueryEngine:
    def __init__(self, gateway: StorageGateway, settings: Settings) -> None:
        self._gateway = gateway
        self._settings = settings

    # ─────────────────────────────────────────────────────────────────
    # Records
    # ─────────────────────────────────────────────────────────────────

    async def get_all(self, limit: int | None = None) -> dict[str, Any]:
        cap = self._settings.max_records
        limit = cap if limit is None else max(LIMIT_FLOOR, min(cap, limit))
        try:
            records = await self._gateway.find_all(limit)
        except StorageError as exc:
            return internal_error(READ_FAILED, exc)
        return ok("retrieve all telemetry data points", data=[r.to_document() for r in records])

    async def get_by_device_limit(self, device_id: str, raw_limit: Any) -> dict[str, Any]:
        try:
            limit = clamp_limit(raw_limit)
        except ClientError as exc:
            return client_error(exc, deviceId=device_id)
        try:
            records = await self._gateway.query_range(device_id=device_id, limit=limit)
        except StorageError as exc:
            return internal_error(READ_FAILED, exc, deviceId=device_id, nLimit=limit)
        return ok(
            "retrieve all telemetry data points",
            deviceId=device_id,
            nLimit=limit,
            data=[r.to_document() for r in records],
        )

    async def get_by_device_range(self, device_id: str, raw_from: Any, raw_to: Any) -> dict[str, Any]:
        try:
            from_ts = parse_bound(raw_from, "fromTS")
            to_ts = parse_bound(raw_to, "toTS")
        except ClientError as exc:
            return client_error(exc, deviceId=device_id)
        try:
            records = await self._gateway.query_range(
                device_id=device_id,
                from_ts=from_ts,
                to_ts=to_ts,
                limit=self._settings.range_query_limit,
            )
        except StorageError as exc:
            return internal_error(READ_FAILED, exc, deviceId=device_id, fromTS=from_ts, toTS=to_ts)
        return ok(
            "retrieve all telemetry data points",
            deviceId=device_id,
            fromTS=from_ts,
            toTS=to_ts,
            data=[r.to_document() for r in records],
        )

    # ─────────────────────────────────────────────────────────────────
    # Counts (zero matches is an empty result, not an error)
    # ─────────────────────────────────────────────────────────────────

    async def count_all(self) -> dict[str, Any]:
        try:
            cnt = await self._gateway.count()
        except StorageError as exc:
            return internal_error(COUNT_FAILED, exc)
        logger.info(f"Telemetry metrics updated. count={cnt}")
        if cnt > 0:
            return ok(COUNT_OK, collection=COLLECTION, count=cnt)
        return empty("Cannot find telemetry data. The database is empty.", collection=COLLECTION, count=0)

    async def count_by_device(self, device_id: str) -> dict[str, Any]:
        try:
            cnt = await self._gateway.count(device_id=device_id)
        except StorageError as exc:
            return internal_error(COUNT_FAILED, exc, deviceId=device_id)
        if cnt > 0:
            return ok(COUNT_OK, collection=COLLECTION, deviceId=device_id, count=cnt)
        return empty(
            f"Cannot find telemetry data for device id {device_id}",
            collection=COLLECTION,
            deviceId=device_id,
            count=0,
        )

    async def count_by_device_range(self, device_id: str, raw_from: Any, raw_to: Any) -> dict[str, Any]:
        try:
            from_ts = parse_bound(raw_from, "fromTS")
            to_ts = parse_bound(raw_to, "toTS")
        except ClientError as exc:
            return client_error(exc, deviceId=device_id)
        try:
            cnt = await self._gateway.count(device_id=device_id, from_ts=from_ts, to_ts=to_ts)
        except StorageError as exc:
            return internal_error(COUNT_FAILED, exc, deviceId=device_id)
        fields = {"collection": COLLECTION, "deviceId": device_id, "fromTS": from_ts, "toTS": to_ts, "count": cnt}
        if cnt > 0:
            return ok(COUNT_OK, **fields)
        return empty(f"Cannot find telemetry data for device id {device_id}", **fields)

    # ─────────────────────────────────────────────────────────────────
    # Trends
    # ─────────────────────────────────────────────────────────────────

    async def _trend(self, device_id: str | None, limit: int | None) -> dict[str, Any]:
        extra: dict[str, Any] = {} if device_id is None else {"deviceId": device_id}
        try:
            buckets = await self._gateway.aggregate_trend(device_id=device_id, limit=limit)
        except StorageError as exc:
            return internal_error(TREND_FAILED, exc, **extra)
        return ok(
            TREND_OK,
            collection=COLLECTION,
            **extra,
            trend=[b.model_dump() for b in buckets],
        )

    async def trend_all(self) -> dict[str, Any]:
        return await self._trend(None, None)

    async def trend_top_n(self, raw_n: Any) -> dict[str, Any]:
        try:
            n = clamp_limit(raw_n)
        except ClientError as exc:
            return client_error(exc)
        return await self._trend(None, n)

    async def trend_by_device(self, device_id: str) -> dict[str, Any]:
        return await self._trend(device_id, None)

    async def trend_by_device_top_n(self, device_id: str, raw_n: Any) -> dict[str, Any]:
        try:
            n = clamp_limit(raw_n)
        except ClientError as exc:
            return client_error(exc, deviceId=device_id)
        return await self._trend(device_id, n)

    # ─────────────────────────────────────────────────────────────────
    # Admin
    # ─────────────────────────────────────────────────────────────────

    async def drop_all(self) -> dict[str, Any]:
        try:
            await self._gateway.drop_all()
        except StorageError as exc:
            return internal_error("Cannot drop telemetry collection due to system errors.", exc)
        return ok("telemetry collection dropped", collection=COLLECTION)
