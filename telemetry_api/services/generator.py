"""Synthetic telemetry for load testing and simulation."""
from __future__ import annotations

import random
from typing import Sequence

from ..models.telemetry import TelemetryRecord

ORIENTATION_PRECISION = 4
READING_PRECISION = 6


def _draw(rng: random.Random, low: float, high: float, places: int) -> float:
    """Uniform draw from [low, high) rounded to ``places`` decimals."""
    value = round(low + rng.random() * (high - low), places)
    if value >= high:
        # rounding pushed the draw onto the open upper bound
        value = round(high - 10 ** -places, places)
    return value


def pick_device(devices: Sequence[str], rng: random.Random | None = None) -> str:
    if not devices:
        raise ValueError("device list is empty")
    return (rng or random).choice(devices)


def generate_record(
    high: float,
    low: float,
    rate_high: float,
    rate_low: float,
    devices: Sequence[str],
    rng: random.Random | None = None,
) -> TelemetryRecord:
    """Build one random reading.

    Orientation and environmental fields come from [low, high), rate fields
    from [rate_low, rate_high). qx/qy/qz keep 4 decimals, everything else 6.
    ``time`` is left unset; the storage gateway stamps it on write.
    """
    rng = rng or random.Random()
    return TelemetryRecord(
        device_id=pick_device(devices, rng),
        qx=_draw(rng, low, high, ORIENTATION_PRECISION),
        qy=_draw(rng, low, high, ORIENTATION_PRECISION),
        qz=_draw(rng, low, high, ORIENTATION_PRECISION),
        ex=_draw(rng, rate_low, rate_high, READING_PRECISION),
        ey=_draw(rng, rate_low, rate_high, READING_PRECISION),
        ez=_draw(rng, rate_low, rate_high, READING_PRECISION),
        qw=_draw(rng, low, high, READING_PRECISION),
        humidity=_draw(rng, low, high, READING_PRECISION),
        temperature=_draw(rng, low, high, READING_PRECISION),
    )
