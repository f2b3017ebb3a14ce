"""
Test runner for USDC Speedtest.
Starts one tester per pair, races the deadline against Ctrl+C, aggregates results.
"""
import threading
import time
import typing as t
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass

from tqdm import tqdm

from config import GAS_PRICE_MULTIPLIER, MAX_RETRIES, RETRY_BASE_S, NetworkConfig
from .cancellation import CancellationCoordinator
from .confirmation import ConfirmationMode, ConfirmationStrategy, create_confirmation_strategy
from .errors import is_transient, short_reason
from .identity import AccountPair
from .network import ConnectionPool, LedgerClient
from .stats import TestSummary, compute_stats
from .tester import TesterResult, TransferRecord, run_tester
from .traffic_curve import TrafficCurve, TrafficPacer
from .transfer import TokenTransfer


@dataclass(frozen=True)
class RunReport:
    results: t.List[TesterResult]
    summary: TestSummary
    duration_ms: float
    mode: ConfirmationMode
    stop_reason: t.Optional[str]
    traffic_shaped: bool = False


class _Progress:
    """Thread-safe transfer counter shown next to the progress bar."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.count = 0

    def record(self, _record: TransferRecord) -> None:
        with self._lock:
            self.count += 1


def read_gas_price(
    client: LedgerClient,
    max_retries: int = MAX_RETRIES,
    retry_base_s: float = RETRY_BASE_S,
    sleep: t.Callable[[float], None] = time.sleep,
) -> int:
    """Gas price with the testers' backoff on transient errors; anything else raises."""
    attempt = 0
    while True:
        try:
            return client.gas_price()
        except Exception as e:
            if not is_transient(e) or attempt >= max_retries:
                raise
            print(f"[Runner] Warning: gas price read failed ({short_reason(e)}), retrying...")
            sleep(retry_base_s * 2 ** attempt)
            attempt += 1


def _clients_for(
    pairs: t.Sequence[AccountPair],
    pool: ConnectionPool,
    mode: ConfirmationMode,
) -> t.List[LedgerClient]:
    """
    Immediate-finality submissions block until final, so each tester gets its
    own channel there; otherwise all testers share the pooled one.
    """
    if mode is ConfirmationMode.IMMEDIATE:
        return [pool.dedicated() for _ in pairs]
    shared = pool.shared()
    return [shared for _ in pairs]


def run_test(
    pairs: t.Sequence[AccountPair],
    pool: ConnectionPool,
    network: NetworkConfig,
    duration_s: float,
    strategy: t.Optional[ConfirmationStrategy] = None,
    traffic_curve: t.Optional[TrafficCurve] = None,
    show_progress: bool = True,
    handle_sigint: bool = True,
) -> RunReport:
    """
    Run every pair concurrently until the deadline or Ctrl+C.

    Throughput is computed over start -> stop signal; the time spent on
    return legs after the signal is not part of the measured window.
    """
    if not pairs:
        raise ValueError("run_test needs at least one account pair")

    gas_price = int(read_gas_price(pool.shared()) * GAS_PRICE_MULTIPLIER)
    transfer = TokenTransfer(network.usdc_address, network.chain_id, gas_price)
    if strategy is None:
        strategy = create_confirmation_strategy(network.immediate_receipt, network.ws_url)
    clients = _clients_for(pairs, pool, strategy.mode)
    baseline_s = network.estimated_block_time_ms / 1000.0
    progress = _Progress()

    print(
        f"[Runner] {len(pairs)} parallel testers for {duration_s}s "
        f"({strategy.mode.value} confirmation, gas price {gas_price} wei)"
    )

    try:
        with CancellationCoordinator(duration_s, handle_sigint=handle_sigint) as coordinator:
            pacer = None
            if traffic_curve is not None:
                pacer = TrafficPacer(traffic_curve, coordinator.started_at)

            with ThreadPoolExecutor(max_workers=len(pairs)) as executor:
                futures = [
                    executor.submit(
                        run_tester,
                        pair,
                        client,
                        transfer,
                        strategy,
                        coordinator.stop_signal,
                        baseline_s,
                        on_record=progress.record,
                        pacer=pacer,
                    )
                    for pair, client in zip(pairs, clients)
                ]

                # Short waits keep the main thread responsive to Ctrl+C
                pending = set(futures)
                with tqdm(
                    total=int(duration_s),
                    unit="s",
                    desc="Running test (Ctrl+C to stop early)",
                    disable=not show_progress,
                ) as pbar:
                    while pending:
                        _, pending = wait(pending, timeout=1.0, return_when=FIRST_COMPLETED)
                        pbar.n = min(int(time.time() - coordinator.started_at), int(duration_s))
                        pbar.set_postfix(txs=progress.count)
                        pbar.refresh()

                results = []
                for pair, future in zip(pairs, futures):
                    try:
                        results.append(future.result())
                    except Exception as e:
                        # Keep the other testers' numbers
                        print(f"[Runner] Critical tester failure (pair #{pair.index}): {e}")
                        results.append(TesterResult(pair_index=pair.index, completed_cleanly=False))
    finally:
        strategy.close()

    summary = compute_stats(results, coordinator.duration_ms)
    return RunReport(
        results=results,
        summary=summary,
        duration_ms=coordinator.duration_ms,
        mode=strategy.mode,
        stop_reason=coordinator.stop_signal.reason,
        traffic_shaped=traffic_curve is not None,
    )
