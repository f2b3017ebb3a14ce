"""
Presentation for USDC Speedtest: console summary and raw CSV dumps.
"""
import csv
import typing as t
from pathlib import Path

from .stats import TestSummary, tester_breakdown
from .tester import TesterResult

RAW_FIELDNAMES = ["pair_index", "tx_hash", "direction", "latency_ms", "gas_used", "completed_cleanly"]


def _fmt(n: float) -> str:
    return f"{n:,.2f}".rstrip("0").rstrip(".")


def _fmt_ms(n: float) -> str:
    return f"{_fmt(n)} ms"


def header(text: str) -> None:
    line = "═" * 60
    print(f"\n{line}\n  {text}\n{line}")


def print_summary(
    summary: TestSummary,
    network_name: str,
    results: t.Sequence[TesterResult],
    traffic_shaped: bool = False,
) -> None:
    header(f"USDC Speedtest Results - {network_name}")

    clean_count = sum(1 for r in results if r.completed_cleanly)
    error_count = len(results) - clean_count
    testers = f"{clean_count} of {len(results)}"
    if error_count:
        testers += f" ({error_count} errored out)"

    print()
    print(f"  Duration:            {_fmt(summary.total_duration_ms / 1000)}s")
    print(f"  Parallel testers:    {testers}")
    print(f"  Total transactions:  {summary.total_transactions}")
    print(f"  Throughput:          {_fmt(summary.transactions_per_second)} tx/s")

    print()
    print("  Latency:")
    print(f"    Average:           {_fmt_ms(summary.avg_latency_ms)}")
    print(f"    Median (p50):      {_fmt_ms(summary.p50_latency_ms)}")
    print(f"    p95:               {_fmt_ms(summary.p95_latency_ms)}")
    print(f"    p99:               {_fmt_ms(summary.p99_latency_ms)}")
    print(f"    Min:               {_fmt_ms(summary.min_latency_ms)}")
    print(f"    Max:               {_fmt_ms(summary.max_latency_ms)}")

    print()
    print("  Gas:")
    print(f"    Total used:        {summary.total_gas_used:,}")
    print(f"    Average per tx:    {_fmt(summary.avg_gas_per_tx)}")

    print()
    print("  Per-tester breakdown:")
    unreturned = {r.pair_index for r in results if not r.unit_on_a}
    for row in tester_breakdown(results):
        status = "" if row.completed_cleanly else " (errored)"
        if row.pair_index in unreturned:
            status += " (USDC left on receiver)"
        print(f"    Tester #{row.pair_index}:  {row.count} txs,  avg {_fmt_ms(row.avg_latency_ms)}{status}")

    if traffic_shaped:
        print()
        print("  Note: Throughput reflects traffic-shaped load, not maximum capacity")

    print("\n" + "═" * 60 + "\n")


def dump_csv(results: t.Sequence[TesterResult], path: t.Union[str, Path]) -> Path:
    """Write one row per confirmed transfer, errored testers included."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rows = [
        {
            "pair_index": r.pair_index,
            "tx_hash": tx.tx_hash,
            "direction": tx.direction.value,
            "latency_ms": round(tx.latency_ms, 3),
            "gas_used": tx.gas_used,
            "completed_cleanly": r.completed_cleanly,
        }
        for r in results
        for tx in r.transactions
    ]
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=RAW_FIELDNAMES)
        writer.writeheader()
        writer.writerows(rows)
    print(f"[Data] {path.name} saved ({len(rows)} rows).")
    return path
