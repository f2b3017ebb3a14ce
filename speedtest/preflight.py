"""
Pre-flight checks for USDC Speedtest.
Confirms every wallet can pay for the whole run before any tester starts.
"""
import typing as t
from dataclasses import dataclass

from web3 import Web3

from config import (
    BALANCE_CHECK_CONCURRENCY,
    FUNDING_BUFFER_PERCENT,
    GAS_PER_ERC20_TRANSFER,
    GAS_PER_ETH_TRANSFER,
    MIN_COST_PER_TX_WEI,
    USDC_CENT,
)
from .concurrency import bounded_map
from .errors import InsufficientFundsError, Shortfall
from .identity import AccountPair
from .network import LedgerClient
from .transfer import format_usdc


@dataclass(frozen=True)
class AccountBalance:
    label: str
    address: str
    native_wei: int
    token_units: int
    holds_unit: bool


def estimate_native_per_account(duration_s: float, block_time_ms: int, gas_price: int) -> int:
    """
    Gas money one wallet needs for the run plus cleanup.

    Each wallet sends about half of its pair's transfers (one per block),
    plus a possible return leg, a token sweep and a native sweep. The larger of
    the gas-price estimate and a per-transaction floor is used, since L2 gas
    prices leave out the L1 data fee, then a 20% buffer is added.
    """
    duration_ms = int(duration_s * 1000)
    test_txs = duration_ms // max(block_time_ms, 1) // 2 + 1
    return_tx, token_sweep_tx, native_sweep_tx = 1, 1, 1
    total_txs = test_txs + return_tx + token_sweep_tx + native_sweep_tx

    erc20_gas = (test_txs + return_tx + token_sweep_tx) * GAS_PER_ERC20_TRANSFER
    native_gas = native_sweep_tx * GAS_PER_ETH_TRANSFER
    gas_estimate = (erc20_gas + native_gas) * gas_price
    floor_estimate = total_txs * MIN_COST_PER_TX_WEI

    return max(gas_estimate, floor_estimate) * FUNDING_BUFFER_PERCENT // 100


def read_balances(
    pairs: t.Sequence[AccountPair],
    client: LedgerClient,
    token_address: str,
    limit: int = BALANCE_CHECK_CONCURRENCY,
) -> t.List[AccountBalance]:
    """Native and token balance of every wallet, A then B per pair."""
    slots = []
    for pair in pairs:
        slots.append((f"#{pair.index * 2} sender", pair.account_a.address, True))
        slots.append((f"#{pair.index * 2 + 1} receiver", pair.account_b.address, False))

    def read(slot: t.Tuple[str, str, bool], _index: int) -> AccountBalance:
        label, address, holds_unit = slot
        return AccountBalance(
            label=label,
            address=address,
            native_wei=client.get_balance(address),
            token_units=client.get_token_balance(token_address, address),
            holds_unit=holds_unit,
        )

    return bounded_map(slots, read, limit)


def find_shortfalls(
    balances: t.Sequence[AccountBalance],
    min_native_wei: int,
    min_token_units: int = USDC_CENT,
) -> t.List[Shortfall]:
    shortfalls = []
    for b in balances:
        if b.native_wei < min_native_wei:
            shortfalls.append(Shortfall(b.label, b.address, "wei", b.native_wei, min_native_wei))
        if b.holds_unit and b.token_units < min_token_units:
            shortfalls.append(
                Shortfall(b.label, b.address, "USDC units", b.token_units, min_token_units)
            )
    return shortfalls


def check_balances(
    pairs: t.Sequence[AccountPair],
    client: LedgerClient,
    token_address: str,
    min_native_wei: int,
    min_token_units: int = USDC_CENT,
    limit: int = BALANCE_CHECK_CONCURRENCY,
) -> t.List[AccountBalance]:
    """
    Read all balances and fail the run up front if any wallet is short.

    Raises:
        InsufficientFundsError: one Shortfall per missing asset per wallet.
    """
    balances = read_balances(pairs, client, token_address, limit)
    for b in balances:
        print(
            f"[Preflight] {b.label:<12} {b.address[:6]}...{b.address[-4:]}  "
            f"{Web3.from_wei(b.native_wei, 'ether')} ETH  {format_usdc(b.token_units)}"
        )

    shortfalls = find_shortfalls(balances, min_native_wei, min_token_units)
    if shortfalls:
        raise InsufficientFundsError(shortfalls)
    print(f"[Preflight] All {len(balances)} wallets are funded.")
    return balances
