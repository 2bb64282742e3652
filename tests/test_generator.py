"""Tests for the synthetic record generator."""
from __future__ import annotations

import random

import pytest

from telemetry_api.services.generator import _draw, generate_record, pick_device

DEVICES = ("Kubos01", "IBEX", "ISS (ZARYA)")


def _decimals(value: float) -> int:
    text = repr(value)
    return len(text.split(".")[1]) if "." in text else 0


@pytest.mark.parametrize("seed", range(25))
def test_fields_fall_inside_their_ranges(seed):
    record = generate_record(10.0, -10.0, 2.0, -2.0, DEVICES, random.Random(seed))

    for name in ("qx", "qy", "qz", "qw", "humidity", "temperature"):
        value = getattr(record, name)
        assert -10.0 <= value < 10.0, name
    for name in ("ex", "ey", "ez"):
        value = getattr(record, name)
        assert -2.0 <= value < 2.0, name
    assert record.device_id in DEVICES


def test_rounding_precision():
    rng = random.Random(7)
    for _ in range(200):
        record = generate_record(400000.0, -400000.0, 20.0, -20.0, DEVICES, rng)
        for name in ("qx", "qy", "qz"):
            assert _decimals(getattr(record, name)) <= 4
        for name in ("ex", "ey", "ez", "qw", "humidity", "temperature"):
            assert _decimals(getattr(record, name)) <= 6


def test_time_is_left_for_the_gateway():
    record = generate_record(1.0, 0.0, 1.0, -1.0, DEVICES, random.Random(1))
    assert record.time is None
    assert record.created_at is None
    assert record.id is None


def test_draw_never_reaches_the_upper_bound():
    class AlmostOne(random.Random):
        def random(self):
            return 0.9999999999

    value = _draw(AlmostOne(), 0.0, 1.0, 4)
    assert value < 1.0
    assert value == 0.9999


def test_same_seed_same_record():
    a = generate_record(1.0, 0.0, 1.0, -1.0, DEVICES, random.Random(42))
    b = generate_record(1.0, 0.0, 1.0, -1.0, DEVICES, random.Random(42))
    assert a == b


def test_every_device_is_reachable():
    rng = random.Random(3)
    seen = {pick_device(DEVICES, rng) for _ in range(300)}
    assert seen == set(DEVICES)


def test_empty_device_list_rejected():
    with pytest.raises(ValueError):
        pick_device((), random.Random(0))
