from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from fakeredis import FakeServer
from fakeredis import aioredis as fake_aioredis

from telemetry_api.config import Settings
from telemetry_api.errors import StorageError
from telemetry_api.models.telemetry import TelemetryRecord
from telemetry_api.storage import StorageGateway


# =============================================================================
# HELPERS
# =============================================================================

class FakeClock:
    """Controllable replacement for the gateway's wall clock."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self.now = datetime.fromtimestamp(start, tz=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def set(self, ts: int) -> None:
        self.now = datetime.fromtimestamp(ts, tz=timezone.utc)

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingGateway:
    """In-memory stand-in for StorageGateway.insert_one with concurrency tracking."""

    def __init__(self, fail_on: set[int] | None = None, hang_on: set[int] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.hang_on = hang_on or set()
        self.calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.stored: list[TelemetryRecord] = []

    async def insert_one(self, record: TelemetryRecord) -> TelemetryRecord:
        call = self.calls
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if call in self.hang_on:
                await asyncio.Event().wait()
            # stagger completions so they finish out of submission order
            for _ in range(1 + (call * 7) % 4):
                await asyncio.sleep(0)
            if call in self.fail_on:
                raise StorageError(f"write {call} rejected")
            stored = record.model_copy(
                update={
                    "id": f"rec-{call}",
                    "time": 1_700_000_000,
                    "created_at": datetime(2023, 11, 14, tzinfo=timezone.utc),
                }
            )
            self.stored.append(stored)
            return stored
        finally:
            self.in_flight -= 1


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return replace(
        Settings(),
        devices=("Kubos01", "Kubos02", "IBEX"),
        max_records=9999,
        ingest_concurrency=5,
        ingest_write_timeout=5.0,
        range_query_limit=10,
        key_prefix="telemetry-test",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def gateway(settings, clock):
    client = fake_aioredis.FakeRedis(server=FakeServer(), decode_responses=True)
    gw = StorageGateway("redis://unused", key_prefix=settings.key_prefix, client=client, clock=clock)
    await gw.open()
    yield gw
    await gw.close()
    await client.aclose()


async def seed(gateway: StorageGateway, clock: FakeClock, device_id: str, times: list[int]) -> None:
    for ts in times:
        clock.set(ts)
        await gateway.insert_one(TelemetryRecord(device_id=device_id, qx=1.0))
