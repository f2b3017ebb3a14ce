"""
USDC Speedtest experiment.
Benchmark EVM network throughput by bouncing USDC between wallet pairs in parallel.

Usage: `python -m scenarios.exp_speedtest --network baseSepolia --parallel 5 --duration 60`
"""
import argparse
import os
import sys
import typing as t
from datetime import datetime
from pathlib import Path

from web3 import Web3

from config import (
    DEFAULT_DURATION_S,
    DEFAULT_NETWORK,
    DEFAULT_PARALLEL,
    LOGS_DIR,
    apply_overrides,
    get_network,
    get_network_names,
)
from speedtest.errors import InsufficientFundsError, SpeedtestError
from speedtest.identity import derive_pairs
from speedtest.network import ConnectionPool
from speedtest.preflight import check_balances, estimate_native_per_account
from speedtest.report import dump_csv, header, print_summary
from speedtest.runner import read_gas_price, run_test
from speedtest.traffic_curve import generate_curve


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="usdc-speedtest",
        description="Benchmark EVM network throughput by sending USDC transfers in parallel",
    )
    parser.add_argument(
        "-n", "--network",
        default=DEFAULT_NETWORK,
        help=f"network name ({', '.join(get_network_names())})",
    )
    parser.add_argument("-p", "--parallel", type=int, default=DEFAULT_PARALLEL,
                        help="number of parallel testers")
    parser.add_argument("-d", "--duration", type=int, default=DEFAULT_DURATION_S,
                        help="test duration in seconds")
    parser.add_argument("--rpc", help="override RPC endpoint")
    parser.add_argument("--ws", help="WebSocket endpoint for block-subscription receipts")
    parser.add_argument("--usdc-address", help="override USDC contract address")
    parser.add_argument("--chain-id", type=int, help="override chain ID")
    parser.add_argument("--immediate-receipt", action="store_true", default=None,
                        help="the chain is final as soon as a transaction is accepted")
    parser.add_argument("--skip-preflight", action="store_true",
                        help="skip the wallet balance check")
    parser.add_argument("--traffic-curve", action="store_true",
                        help="shape load along a random utilisation curve")
    parser.add_argument("-y", "--yes", action="store_true",
                        help="start without the confirmation prompt")
    return parser


def run(argv: t.Optional[t.Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    network = apply_overrides(
        get_network(args.network),
        rpc=args.rpc,
        ws=args.ws,
        usdc_address=args.usdc_address,
        chain_id=args.chain_id,
        immediate_receipt=args.immediate_receipt,
    )
    if not network.supported:
        print(
            f'Error: Network "{args.network}" is not yet fully supported. '
            "Use --rpc, --usdc-address, and --chain-id to provide configuration."
        )
        return 1

    private_key = os.environ.get("PRIVATE_KEY")
    if not private_key:
        print("Error: PRIVATE_KEY environment variable is required.")
        return 1
    if args.parallel < 1 or args.duration < 1:
        print("Error: --parallel and --duration must be positive.")
        return 1

    header("USDC Speedtest")
    print(f"  Network:    {network.name} (chainId: {network.chain_id})")
    print(f"  RPC:        {network.rpc_url}")
    print(f"  Parallel:   {args.parallel} testers ({args.parallel * 2} wallets)")
    print(f"  Duration:   {args.duration}s")

    pairs = derive_pairs(private_key, args.parallel)
    for pair in pairs:
        print(f"  #{pair.index * 2} sender   {pair.account_a.address}")
        print(f"  #{pair.index * 2 + 1} receiver {pair.account_b.address}")

    with ConnectionPool(network.rpc_url) as pool:
        if not args.skip_preflight:
            gas_price = read_gas_price(pool.shared())
            min_native = estimate_native_per_account(
                args.duration, network.estimated_block_time_ms, gas_price
            )
            print(f"\n[Preflight] Gas price {gas_price / 1e9:.4f} gwei, "
                  f"need {Web3.from_wei(min_native, 'ether')} ETH per wallet")
            try:
                check_balances(pairs, pool.shared(), network.usdc_address, min_native)
            except InsufficientFundsError as e:
                print(f"Error: {e}")
                return 1

        curve = None
        if args.traffic_curve:
            curve = generate_curve(args.duration * 1000)
            print(curve.describe())

        header(f"Ready to Start - {network.name}")
        print("  Running the test will spend gas on each transaction.")
        if not args.yes and input("  Start the test? [y/N] ").strip().lower() not in ("y", "yes"):
            print("  Test cancelled.")
            return 0

        report = run_test(pairs, pool, network, args.duration, traffic_curve=curve)

    print_summary(report.summary, network.name, report.results, report.traffic_shaped)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    dump_csv(
        report.results,
        Path(LOGS_DIR) / f"raw_txs_{args.network}_P{args.parallel}_{timestamp}.csv",
    )
    return 0


def main() -> None:
    try:
        code = run()
    except (SpeedtestError, ValueError) as e:
        print(f"Error: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
