import random

import pytest

from speedtest.traffic_curve import (
    TrafficCurve,
    TrafficPacer,
    Waypoint,
    format_elapsed,
    generate_curve,
)

from fakes import FakeClock


@pytest.mark.parametrize("seed", range(20))
def test_ten_minute_curve_shape(seed):
    curve = generate_curve(600_000, rng=random.Random(seed))
    wps = curve.waypoints

    assert wps[0].time_ms == 0
    assert 0.1 <= wps[0].target <= 0.5
    assert wps[-1].time_ms == 600_000
    for wp in wps[1:]:
        assert 0.1 <= wp.target <= 0.95
    for a, b in zip(wps, wps[1:]):
        assert 0 < b.time_ms - a.time_ms <= 300_000
    for a, b in zip(wps[1:-1], wps[2:-1]):
        assert b.time_ms - a.time_ms >= 30_000


def test_zero_duration_and_negative():
    curve = generate_curve(0, rng=random.Random(1))
    assert curve.waypoints[0].time_ms == 0
    assert 0.1 <= curve.tick(0) <= 0.5
    with pytest.raises(ValueError):
        generate_curve(-1)


def test_tick_interpolates_and_clamps():
    curve = TrafficCurve((Waypoint(0, 0.2), Waypoint(1_000, 0.6), Waypoint(3_000, 0.1)))
    assert curve.tick(-50) == pytest.approx(0.2)
    assert curve.tick(500) == pytest.approx(0.4)
    assert curve.tick(1_000) == pytest.approx(0.6)
    assert curve.tick(2_000) == pytest.approx(0.35)
    assert curve.tick(10_000) == pytest.approx(0.1)
    # Pure in elapsed time: asking again gives the same answer
    assert [curve.tick(ms) for ms in (0, 500, 2_500)] == [curve.tick(ms) for ms in (0, 500, 2_500)]


def test_describe_and_elapsed_format():
    curve = TrafficCurve((Waypoint(0, 0.25), Waypoint(150_000, 0.45)))
    assert curve.describe().splitlines() == [
        "Traffic curve waypoints:",
        "  0s → 25%",
        "  2m30s → 45%",
    ]
    assert format_elapsed(45_000) == "45s"
    assert format_elapsed(120_000) == "2m"


def test_pacer_idle_time_matches_target():
    clock = FakeClock(now=100.0)
    curve = TrafficCurve((Waypoint(0, 0.5), Waypoint(10_000, 0.25)))
    pacer = TrafficPacer(curve, started_at=100.0, clock=clock)

    assert pacer.idle_s(2.0) == pytest.approx(2.0)
    clock.now = 110.0
    assert pacer.target() == pytest.approx(0.25)
    assert pacer.idle_s(2.0) == pytest.approx(6.0)
