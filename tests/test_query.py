"""Tests for the query and aggregation engine."""
from __future__ import annotations

from dataclasses import replace
from unittest.mock import AsyncMock

import pytest

from telemetry_api.errors import ClientError, StorageError
from telemetry_api.services.query import TelemetryQueryEngine, clamp_limit, parse_bound
from telemetry_api.storage import StorageGateway

from tests.conftest import seed


@pytest.fixture
def engine(gateway, settings):
    return TelemetryQueryEngine(gateway, settings)


# =============================================================================
# PARAMETER HANDLING
# =============================================================================

class TestClampLimit:

    @pytest.mark.parametrize(
        "raw, expected",
        [(50000, 9999), ("9999", 9999), ("10000", 9999), ("0", 1), (-5, 1), ("1", 1), ("250", 250)],
    )
    def test_clamps_into_range(self, raw, expected):
        assert clamp_limit(raw) == expected

    @pytest.mark.parametrize("raw", [-10**9, -1, 0, 1, 42, 9999, 10000, 10**9])
    def test_idempotent(self, raw):
        assert clamp_limit(clamp_limit(raw)) == clamp_limit(raw)

    @pytest.mark.parametrize("raw", ["ten", "", "nan", "inf", "1e400", None])
    def test_non_numeric_is_rejected(self, raw):
        with pytest.raises(ClientError):
            clamp_limit(raw)

    @pytest.mark.parametrize("raw, expected", [("10.5", 10), (" 2.99 ", 2), (250.7, 250), ("0.5", 1), ("1e4", 9999)])
    def test_decimals_are_truncated(self, raw, expected):
        assert clamp_limit(raw) == expected


class TestParseBound:

    def test_valid(self):
        assert parse_bound("1700000000", "fromTS") == 1_700_000_000
        assert parse_bound(0, "toTS") == 0

    def test_decimal_seconds_are_truncated(self):
        assert parse_bound("1457640420.5", "fromTS") == 1_457_640_420
        assert parse_bound(" 0.9 ", "toTS") == 0

    @pytest.mark.parametrize("raw", ["-1", -3, "-0.5", "yesterday", "nan", "-inf", None])
    def test_invalid(self, raw):
        with pytest.raises(ClientError, match="fromTS"):
            parse_bound(raw, "fromTS")


# =============================================================================
# RECORD QUERIES
# =============================================================================

class TestRecordQueries:

    @pytest.mark.asyncio
    async def test_limit_is_clamped_before_querying(self, settings):
        gateway = AsyncMock(spec=StorageGateway)
        gateway.query_range.return_value = []
        engine = TelemetryQueryEngine(gateway, settings)

        result = await engine.get_by_device_limit("IBEX", "50000")

        assert result["status"] == 200
        assert result["nLimit"] == 9999
        gateway.query_range.assert_awaited_once_with(device_id="IBEX", limit=9999)

    @pytest.mark.asyncio
    async def test_latest_window_oldest_to_newest(self, engine, gateway, clock):
        await seed(gateway, clock, "IBEX", [10, 20, 30, 40])

        result = await engine.get_by_device_limit("IBEX", 3)

        assert [d["time"] for d in result["data"]] == [20, 30, 40]

    @pytest.mark.asyncio
    async def test_non_numeric_limit_is_client_error(self, engine):
        result = await engine.get_by_device_limit("IBEX", "lots")

        assert result["status"] == 400
        assert result["type"] == "client"
        assert result["deviceId"] == "IBEX"

    @pytest.mark.asyncio
    async def test_range_caps_at_ten(self, engine, gateway, clock):
        await seed(gateway, clock, "IBEX", list(range(100, 125)))

        result = await engine.get_by_device_range("IBEX", "100", "200")

        assert result["status"] == 200
        assert [d["time"] for d in result["data"]] == list(range(115, 125))
        assert result["fromTS"] == 100
        assert result["toTS"] == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("from_ts, to_ts", [("abc", "10"), ("10", "-1"), ("-5", "10"), ("10", "")])
    async def test_bad_bounds_never_reach_storage(self, settings, from_ts, to_ts):
        gateway = AsyncMock(spec=StorageGateway)
        engine = TelemetryQueryEngine(gateway, settings)

        result = await engine.get_by_device_range("IBEX", from_ts, to_ts)

        assert result["status"] == 400
        assert result["type"] == "client"
        gateway.query_range.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_decimal_bounds_reach_storage_truncated(self, settings):
        gateway = AsyncMock(spec=StorageGateway)
        gateway.query_range.return_value = []
        engine = TelemetryQueryEngine(gateway, settings)

        result = await engine.get_by_device_range("IBEX", "1457640420.5", "1457640480.9")

        assert result["status"] == 200
        assert result["fromTS"] == 1_457_640_420
        assert result["toTS"] == 1_457_640_480
        gateway.query_range.assert_awaited_once_with(
            device_id="IBEX",
            from_ts=1_457_640_420,
            to_ts=1_457_640_480,
            limit=settings.range_query_limit,
        )

    @pytest.mark.asyncio
    async def test_get_all_is_capped(self, gateway, clock, settings):
        await seed(gateway, clock, "IBEX", [1, 2, 3, 4, 5])
        engine = TelemetryQueryEngine(gateway, replace(settings, max_records=3))

        result = await engine.get_all()

        assert [d["time"] for d in result["data"]] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_storage_failure_is_internal(self, settings):
        gateway = AsyncMock(spec=StorageGateway)
        gateway.query_range.side_effect = StorageError("storage is not connected")
        engine = TelemetryQueryEngine(gateway, settings)

        result = await engine.get_by_device_limit("IBEX", 5)

        assert result["status"] == 500
        assert result["type"] == "internal"
        assert result["error"] == "storage is not connected"


# =============================================================================
# COUNTS
# =============================================================================

class TestCounts:

    @pytest.mark.asyncio
    async def test_unknown_device_is_empty_result(self, engine):
        result = await engine.count_by_device("UNKNOWN")

        assert result["status"] == 300
        assert result.get("count", 0) == 0
        assert "UNKNOWN" in result["message"]
        assert "type" not in result

    @pytest.mark.asyncio
    async def test_populated_counts(self, engine, gateway, clock):
        await seed(gateway, clock, "IBEX", [100, 101, 102])
        await seed(gateway, clock, "Kubos01", [100])

        assert (await engine.count_all())["count"] == 4
        assert (await engine.count_by_device("IBEX"))["count"] == 3
        ranged = await engine.count_by_device_range("IBEX", "101", "102")
        assert ranged["status"] == 200
        assert ranged["count"] == 2

    @pytest.mark.asyncio
    async def test_empty_range_count(self, engine, gateway, clock):
        await seed(gateway, clock, "IBEX", [100])

        result = await engine.count_by_device_range("IBEX", 200, 300)

        assert result["status"] == 300
        assert result["count"] == 0

    @pytest.mark.asyncio
    async def test_range_count_validates_bounds(self, engine):
        result = await engine.count_by_device_range("IBEX", "x", "300")
        assert result["status"] == 400

    @pytest.mark.asyncio
    async def test_drop_then_count_is_empty(self, engine, gateway, clock):
        await seed(gateway, clock, "IBEX", [100, 101])

        dropped = await engine.drop_all()
        result = await engine.count_all()

        assert dropped["status"] == 200
        assert result["status"] == 300
        assert result["count"] == 0

    @pytest.mark.asyncio
    async def test_count_failure(self, settings):
        gateway = AsyncMock(spec=StorageGateway)
        gateway.count.side_effect = StorageError("count failed: boom")
        engine = TelemetryQueryEngine(gateway, settings)

        result = await engine.count_all()

        assert result["status"] == 500
        assert result["type"] == "internal"


# =============================================================================
# TRENDS
# =============================================================================

class TestTrends:

    @pytest.mark.asyncio
    async def test_trend_all(self, engine, gateway, clock):
        await seed(gateway, clock, "IBEX", [100, 100, 102])

        result = await engine.trend_all()

        assert result["trend"] == [{"time": 100, "subtotal": 2}, {"time": 102, "subtotal": 1}]

    @pytest.mark.asyncio
    async def test_top_n_is_clamped(self, engine, gateway, clock):
        await seed(gateway, clock, "IBEX", [100, 101, 102])

        result = await engine.trend_top_n("0")

        assert result["trend"] == [{"time": 102, "subtotal": 1}]

    @pytest.mark.asyncio
    async def test_by_device(self, engine, gateway, clock):
        await seed(gateway, clock, "IBEX", [100, 101])
        await seed(gateway, clock, "Kubos01", [105])

        result = await engine.trend_by_device("Kubos01")
        top = await engine.trend_by_device_top_n("IBEX", 1)

        assert result["deviceId"] == "Kubos01"
        assert result["trend"] == [{"time": 105, "subtotal": 1}]
        assert top["trend"] == [{"time": 101, "subtotal": 1}]

    @pytest.mark.asyncio
    async def test_trend_top_n_huge_limit(self, settings):
        gateway = AsyncMock(spec=StorageGateway)
        gateway.aggregate_trend.return_value = []
        engine = TelemetryQueryEngine(gateway, settings)

        await engine.trend_by_device_top_n("IBEX", 123456)

        gateway.aggregate_trend.assert_awaited_once_with(device_id="IBEX", limit=9999)
