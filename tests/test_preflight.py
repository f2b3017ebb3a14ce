import pytest

from config import USDC_CENT
from speedtest.errors import InsufficientFundsError
from speedtest.preflight import (
    AccountBalance,
    check_balances,
    estimate_native_per_account,
    find_shortfalls,
    read_balances,
)

from fakes import make_pair

ONE_GWEI = 1_000_000_000


class BalanceClient:
    def __init__(self, native, tokens):
        self.native = native
        self.tokens = tokens
        self.token_reads = []

    def get_balance(self, address):
        return self.native.get(address, 0)

    def get_token_balance(self, token_address, address):
        self.token_reads.append(token_address)
        return self.tokens.get(address, 0)


def test_estimate_uses_gas_price_when_it_dominates():
    # 16 test transfers + return + token sweep at 65k gas, one 21k native sweep
    assert estimate_native_per_account(60, 2_000, ONE_GWEI) == 1_191_000 * ONE_GWEI * 120 // 100


def test_estimate_falls_back_to_per_tx_floor():
    # 19 transactions at the 0.000005 ETH floor, plus 20%
    assert estimate_native_per_account(60, 2_000, 1) == 114_000_000_000_000


def test_read_balances_labels_and_order():
    pairs = [make_pair(0), make_pair(1)]
    client = BalanceClient(native={"0xA0": 5}, tokens={"0xA0": USDC_CENT})

    balances = read_balances(pairs, client, "0xUSDC", limit=2)

    assert [b.label for b in balances] == ["#0 sender", "#1 receiver", "#2 sender", "#3 receiver"]
    assert [b.address for b in balances] == ["0xA0", "0xB0", "0xA1", "0xB1"]
    assert balances[0].native_wei == 5
    assert [b.holds_unit for b in balances] == [True, False, True, False]
    assert set(client.token_reads) == {"0xUSDC"}


def test_find_shortfalls_checks_token_on_senders_only():
    balances = [
        AccountBalance("#0 sender", "0xA0", 100, 0, holds_unit=True),
        AccountBalance("#1 receiver", "0xB0", 10, 0, holds_unit=False),
        AccountBalance("#2 sender", "0xA1", 100, USDC_CENT, holds_unit=True),
    ]

    shortfalls = find_shortfalls(balances, min_native_wei=50)

    assert [(s.label, s.asset, s.missing) for s in shortfalls] == [
        ("#0 sender", "USDC units", USDC_CENT),
        ("#1 receiver", "wei", 40),
    ]


def test_check_balances_raises_before_anything_starts():
    pairs = [make_pair(0)]
    client = BalanceClient(native={"0xA0": 10**18, "0xB0": 1}, tokens={"0xA0": USDC_CENT})

    with pytest.raises(InsufficientFundsError) as excinfo:
        check_balances(pairs, client, "0xUSDC", min_native_wei=10**15)

    assert [s.address for s in excinfo.value.shortfalls] == ["0xB0"]


def test_check_balances_passes_when_funded(capsys):
    pairs = [make_pair(0)]
    client = BalanceClient(native={"0xA0": 10**18, "0xB0": 10**18}, tokens={"0xA0": USDC_CENT})

    balances = check_balances(pairs, client, "0xUSDC", min_native_wei=10**15)

    assert len(balances) == 2
    assert "All 2 wallets are funded" in capsys.readouterr().out
