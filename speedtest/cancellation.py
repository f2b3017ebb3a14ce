"""
Cooperative cancellation for USDC Speedtest.
A single stop signal shared by every tester, fired by a deadline timer or Ctrl+C.
"""
import signal
import threading
import time
import typing as t


class StopSignal:
    """
    Process-wide stop flag for one run, shared by reference.

    The first `stop()` wins: it records the stop instant and the reason,
    later calls change nothing. Testers only read it between attempts.
    """

    def __init__(self, clock: t.Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._event = threading.Event()
        self.stopped_at: t.Optional[float] = None
        self.reason: t.Optional[str] = None

    @property
    def stopped(self) -> bool:
        return self._event.is_set()

    def stop(self, reason: str = "stop") -> bool:
        """Set the flag; returns True only for the call that actually set it."""
        with self._lock:
            if self._event.is_set():
                return False
            self.stopped_at = self._clock()
            self.reason = reason
            self._event.set()
        return True

    def wait(self, timeout: t.Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class CancellationCoordinator:
    """
    Races a wall-clock deadline against an external interrupt.

    Usage:
        with CancellationCoordinator(duration_s=60) as coordinator:
            ... start testers with coordinator.stop_signal ...
        coordinator.duration_s  # stop instant - start instant

    The measured duration ends when the signal fires, not when cleanup
    (return legs, thread joins) is done.
    """

    def __init__(
        self,
        duration_s: float,
        stop_signal: t.Optional[StopSignal] = None,
        clock: t.Callable[[], float] = time.time,
        handle_sigint: bool = True,
    ) -> None:
        if duration_s < 0:
            raise ValueError(f"duration_s must be >= 0, got {duration_s}")
        self.duration_limit_s = duration_s
        self.stop_signal = stop_signal or StopSignal(clock)
        self.started_at: t.Optional[float] = None
        self._clock = clock
        self._handle_sigint = handle_sigint
        self._timer: t.Optional[threading.Timer] = None
        self._previous_handler: t.Any = None
        self._installed_handler = False

    def start(self) -> None:
        self.started_at = self._clock()
        self._timer = threading.Timer(self.duration_limit_s, self.deadline)
        self._timer.daemon = True
        self._timer.start()

        # signal.signal only works from the main thread
        if self._handle_sigint and threading.current_thread() is threading.main_thread():
            self._previous_handler = signal.signal(signal.SIGINT, self._on_sigint)
            self._installed_handler = True

    def deadline(self) -> bool:
        return self.stop_signal.stop("deadline")

    def interrupt(self) -> bool:
        return self.stop_signal.stop("interrupt")

    def _on_sigint(self, signum: int, frame: t.Any) -> None:
        if self.interrupt():
            print("\n  Ctrl+C received - stopping after current transactions complete...")
            # A second Ctrl+C aborts for real
            signal.signal(signal.SIGINT, signal.default_int_handler)

    def finish(self) -> None:
        """Disarm the timer, restore Ctrl+C, and close the window if still open."""
        if self._timer is not None:
            self._timer.cancel()
        if self._installed_handler:
            signal.signal(signal.SIGINT, self._previous_handler)
            self._installed_handler = False
        # Every tester ended on its own before the deadline
        self.stop_signal.stop("finished")

    @property
    def duration_s(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.stop_signal.stopped_at
        if end is None:
            end = self._clock()
        return max(end - self.started_at, 0.0)

    @property
    def duration_ms(self) -> float:
        return self.duration_s * 1000.0

    def __enter__(self) -> "CancellationCoordinator":
        self.start()
        return self

    def __exit__(self, *exc_info: t.Any) -> None:
        self.finish()
