"""
Statistics for USDC Speedtest.
Reduces tester results into throughput, gas and latency percentiles.
"""
import math
import typing as t
from dataclasses import dataclass

from .tester import TesterResult


@dataclass(frozen=True)
class TestSummary:
    total_transactions: int
    total_duration_ms: float
    transactions_per_second: float
    total_gas_used: int
    avg_gas_per_tx: float
    avg_latency_ms: float
    min_latency_ms: float
    max_latency_ms: float
    p50_latency_ms: float
    p95_latency_ms: float
    p99_latency_ms: float


@dataclass(frozen=True)
class TesterBreakdown:
    pair_index: int
    count: int
    avg_latency_ms: float
    completed_cleanly: bool


def percentile(sorted_values: t.Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile of an ascending sequence; 0 when empty.
    """
    n = len(sorted_values)
    if n == 0:
        return 0
    idx = math.ceil(p / 100 * n) - 1
    return sorted_values[min(max(idx, 0), n - 1)]


def compute_stats(results: t.Sequence[TesterResult], duration_ms: float) -> TestSummary:
    """
    Aggregate every transfer of the testers that ran until the stop signal.

    Errored testers cover only part of the window, so they are left out of
    the throughput and latency figures (see `tester_breakdown` for them).
    """
    clean = [r for r in results if r.completed_cleanly]
    latencies = sorted(tx.latency_ms for r in clean for tx in r.transactions)
    total_gas = sum(tx.gas_used for r in clean for tx in r.transactions)
    total = len(latencies)

    if total == 0:
        return TestSummary(
            total_transactions=0,
            total_duration_ms=duration_ms,
            transactions_per_second=0.0,
            total_gas_used=0,
            avg_gas_per_tx=0.0,
            avg_latency_ms=0.0,
            min_latency_ms=0.0,
            max_latency_ms=0.0,
            p50_latency_ms=0.0,
            p95_latency_ms=0.0,
            p99_latency_ms=0.0,
        )

    duration_s = duration_ms / 1000.0
    return TestSummary(
        total_transactions=total,
        total_duration_ms=duration_ms,
        transactions_per_second=total / duration_s if duration_s > 0 else 0.0,
        total_gas_used=total_gas,
        avg_gas_per_tx=total_gas / total,
        avg_latency_ms=sum(latencies) / total,
        min_latency_ms=latencies[0],
        max_latency_ms=latencies[-1],
        p50_latency_ms=percentile(latencies, 50),
        p95_latency_ms=percentile(latencies, 95),
        p99_latency_ms=percentile(latencies, 99),
    )


def tester_breakdown(results: t.Sequence[TesterResult]) -> t.List[TesterBreakdown]:
    """Per-tester count and average latency, errored testers included."""
    rows = []
    for r in results:
        count = len(r.transactions)
        avg = sum(tx.latency_ms for tx in r.transactions) / count if count else 0.0
        rows.append(TesterBreakdown(
            pair_index=r.pair_index,
            count=count,
            avg_latency_ms=avg,
            completed_cleanly=r.completed_cleanly,
        ))
    return rows
