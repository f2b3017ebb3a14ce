"""
Traffic shaping for USDC Speedtest.
A random piecewise-linear target-utilisation schedule over the run.
"""
import random
import time
import typing as t
from dataclasses import dataclass

START_TARGET_RANGE = (0.1, 0.5)
TARGET_RANGE = (0.1, 0.95)
SEGMENT_MS_RANGE = (30_000, 300_000)  # 0.5 to 5 minutes


@dataclass(frozen=True)
class Waypoint:
    time_ms: float
    target: float  # 0.0 to 1.0


@dataclass(frozen=True)
class TrafficCurve:
    """
    Read-only waypoint list; `tick` is a pure function of elapsed time.
    """

    waypoints: t.Tuple[Waypoint, ...]

    def tick(self, elapsed_ms: float) -> float:
        """Target utilisation at `elapsed_ms`, interpolated between waypoints."""
        first, last = self.waypoints[0], self.waypoints[-1]
        if elapsed_ms <= first.time_ms:
            return first.target
        if elapsed_ms >= last.time_ms:
            return last.target

        for a, b in zip(self.waypoints, self.waypoints[1:]):
            if a.time_ms <= elapsed_ms < b.time_ms:
                frac = (elapsed_ms - a.time_ms) / (b.time_ms - a.time_ms)
                return a.target + frac * (b.target - a.target)
        return last.target

    def describe(self) -> str:
        lines = ["Traffic curve waypoints:"]
        for wp in self.waypoints:
            lines.append(f"  {format_elapsed(wp.time_ms)} → {wp.target * 100:.0f}%")
        return "\n".join(lines)


def generate_curve(duration_ms: float, rng: t.Optional[random.Random] = None) -> TrafficCurve:
    """
    Random curve spanning `duration_ms`.

    Starts at t=0 with a 10-50% target, then adds a waypoint every 30-300 s
    with a 10-95% target; the last one sits exactly on `duration_ms`.
    """
    if duration_ms < 0:
        raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")
    rng = rng or random.Random()

    waypoints = [Waypoint(0, rng.uniform(*START_TARGET_RANGE))]
    current = 0.0
    while current < duration_ms:
        current += rng.uniform(*SEGMENT_MS_RANGE)
        if current >= duration_ms:
            waypoints.append(Waypoint(duration_ms, rng.uniform(*TARGET_RANGE)))
            break
        waypoints.append(Waypoint(current, rng.uniform(*TARGET_RANGE)))
    return TrafficCurve(tuple(waypoints))


def format_elapsed(ms: float) -> str:
    total_sec = int(ms // 1000)
    minutes, sec = divmod(total_sec, 60)
    if minutes == 0:
        return f"{sec}s"
    return f"{minutes}m{sec}s" if sec else f"{minutes}m"


class TrafficPacer:
    """
    Turns a curve into idle time between transfers.

    A tester running flat out is busy 100% of the time; to sit at target f it
    idles busy_s * (1 - f) / f after each transfer.
    """

    def __init__(
        self,
        curve: TrafficCurve,
        started_at: float,
        clock: t.Callable[[], float] = time.time,
    ) -> None:
        self.curve = curve
        self.started_at = started_at
        self._clock = clock

    def target(self) -> float:
        return self.curve.tick((self._clock() - self.started_at) * 1000.0)

    def idle_s(self, busy_s: float) -> float:
        target = self.target()
        if target <= 0:
            return busy_s
        return max(busy_s * (1 - target) / target, 0.0)
