"""Bulk ingestion with bounded write concurrency.

A batch of records is written with at most ``max_concurrency`` in-flight
``insert_one`` calls. A new write is admitted as soon as a slot frees up,
failures never stop sibling writes, and one envelope summarizing the whole
batch is produced once every item has reached a terminal state.

A write that exceeds ``ingest_write_timeout`` is cancelled, but its MULTI/EXEC
may already have reached the store, so its outcome is reported as unknown
rather than failed.
"""
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from ..config import Settings
from ..envelope import client_error, internal_error, ok
from ..errors import ClientError, StorageError
from ..models.telemetry import TelemetryRecord
from ..storage import StorageGateway
from .generator import generate_record

logger = logging.getLogger(__name__)

INSERT_FAILED = "Cannot insert telemetry data points due to internal system error"


@dataclass(frozen=True)
class RangeParams:
    high: float
    low: float
    rate_high: float
    rate_low: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "RangeParams":
        return cls(settings.value_high, settings.value_low, settings.rate_high, settings.rate_low)


@dataclass
class WriteFailure:
    index: int
    counter: int  # items completed before this failure was observed
    error: StorageError
    # timed out: the record may or may not have been stored
    outcome_unknown: bool = False


@dataclass
class IngestionBatch:
    """In-memory state of one ingestion request."""

    records: list[TelemetryRecord]
    max_concurrency: int
    completed: int = 0
    stored: list[TelemetryRecord | None] = field(default_factory=list)
    failures: list[WriteFailure] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.stored = [None] * len(self.records)

    @property
    def size(self) -> int:
        return len(self.records)

    @property
    def done(self) -> bool:
        return self.completed == self.size

    @property
    def first_failure(self) -> WriteFailure | None:
        return self.failures[0] if self.failures else None

    @property
    def unknown(self) -> int:
        return sum(1 for f in self.failures if f.outcome_unknown)


def parse_count(raw: Any) -> int:
    """Parse a requested record count; non-numeric or negative is a client error."""
    if isinstance(raw, bool):
        raise ClientError("Please enter a valid number (nTimes)", nTimes=raw)
    if isinstance(raw, int):
        value = raw
    else:
        try:
            value = int(str(raw).strip())
        except ValueError:
            raise ClientError("Please enter a valid number (nTimes)", nTimes=raw) from None
    if value < 0:
        raise ClientError("Please enter a valid number (nTimes)", nTimes=value)
    return value


class BulkIngestionCoordinator:
    def __init__(
        self,
        gateway: StorageGateway,
        settings: Settings,
        rng: random.Random | None = None,
    ) -> None:
        self._gateway = gateway
        self._settings = settings
        self._rng = rng or random.Random()

    @property
    def max_records(self) -> int:
        return self._settings.max_records

    async def _write(self, batch: IngestionBatch, index: int, slots: asyncio.Semaphore) -> None:
        async with slots:
            timeout = self._settings.ingest_write_timeout
            try:
                write = self._gateway.insert_one(batch.records[index])
                if timeout and timeout > 0:
                    stored = await asyncio.wait_for(write, timeout)
                else:
                    stored = await write
            except asyncio.TimeoutError:
                exc = StorageError(f"insert timed out after {timeout}s")
                logger.warning(f"Write {index + 1}/{batch.size} outcome unknown: {exc.message}")
                batch.failures.append(
                    WriteFailure(index=index, counter=batch.completed, error=exc, outcome_unknown=True)
                )
            except StorageError as exc:
                logger.warning(f"Write {index + 1}/{batch.size} failed: {exc.message}")
                batch.failures.append(WriteFailure(index=index, counter=batch.completed, error=exc))
            else:
                batch.stored[index] = stored
            finally:
                batch.completed += 1

    async def run_batch(self, batch: IngestionBatch) -> IngestionBatch:
        """Write every record of ``batch`` and return once all of them finished."""
        slots = asyncio.Semaphore(batch.max_concurrency)
        await asyncio.gather(*(self._write(batch, i, slots) for i in range(batch.size)))
        if not batch.done:
            raise RuntimeError(f"batch finished with {batch.completed}/{batch.size} writes accounted")
        return batch

    def _summarize(self, batch: IngestionBatch, message: str) -> dict[str, Any]:
        failure = batch.first_failure
        if failure is not None:
            return internal_error(
                INSERT_FAILED,
                failure.error,
                nTimes=batch.size,
                counter=failure.counter,
                failed=len(batch.failures) - batch.unknown,
                unknown=batch.unknown,
            )
        return ok(
            message,
            nTimes=batch.size,
            counter=batch.completed,
            data=[record.to_document() for record in batch.stored if record is not None],
        )

    async def ingest(self, raw_count: Any, ranges: RangeParams | None = None) -> dict[str, Any]:
        """Generate ``raw_count`` synthetic records and write them.

        Counts above ``max_records`` are clamped to it.
        """
        try:
            count = parse_count(raw_count)
        except ClientError as exc:
            return client_error(exc)
        if count > self.max_records:
            logger.info(f"Clamping ingestion count {count} to {self.max_records}")
            count = self.max_records

        ranges = ranges or RangeParams.from_settings(self._settings)
        records = [
            generate_record(
                ranges.high,
                ranges.low,
                ranges.rate_high,
                ranges.rate_low,
                self._settings.devices,
                self._rng,
            )
            for _ in range(count)
        ]
        batch = IngestionBatch(records=records, max_concurrency=self._settings.ingest_concurrency)
        logger.info(f"Ingesting {batch.size} simulated records")
        await self.run_batch(batch)
        logger.info(
            f"Ingestion finished: {batch.size - len(batch.failures)} stored, "
            f"{len(batch.failures) - batch.unknown} failed, {batch.unknown} unknown"
        )
        return self._summarize(batch, "create all telemetry data points")

    async def ingest_records(self, payloads: list[dict[str, Any]]) -> dict[str, Any]:
        """Write a caller-supplied list of records through the same bounded window."""
        try:
            if len(payloads) > self.max_records:
                raise ClientError(
                    f"Too many records in one request (max {self.max_records})",
                    nTimes=len(payloads),
                )
            records = [TelemetryRecord.model_validate(p) for p in payloads]
        except ValidationError as exc:
            return client_error(ClientError(f"Invalid telemetry record: {exc.errors()[0]['msg']}"))
        except ClientError as exc:
            return client_error(exc)

        batch = IngestionBatch(records=records, max_concurrency=self._settings.ingest_concurrency)
        await self.run_batch(batch)
        return self._summarize(batch, "insert all telemetry data points")

    async def ingest_one(self, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            record = TelemetryRecord.model_validate(payload)
        except ValidationError as exc:
            return client_error(ClientError(f"Invalid telemetry record: {exc.errors()[0]['msg']}"))
        try:
            stored = await self._gateway.insert_one(record)
        except StorageError as exc:
            return internal_error(INSERT_FAILED, exc)
        return ok("insert telemetry data point", data=stored.to_document())
