"""
Identity management for USDC Speedtest.
Deterministic wallet derivation, tester pairs and local nonce tracking.
"""
import typing as t
from dataclasses import dataclass

from eth_account import Account
from eth_account.hdaccount.mnemonic import Mnemonic
from eth_account.signers.local import LocalAccount

Account.enable_unaudited_hdwallet_features()

DERIVATION_PREFIX = "m/44'/60'/0'/0"


@dataclass(frozen=True)
class AccountPair:
    """
    Two wallets owned by exactly one tester for the whole run.
    The token unit starts on `account_a`.
    """
    index: int
    account_a: LocalAccount
    account_b: LocalAccount


@dataclass
class NonceState:
    """
    Local sequence counter for one account.

    Fetched once when a tester starts and advanced only after a confirmed
    transfer, so a retried attempt reuses the same nonce.
    """
    address: str
    current: int

    def advance(self) -> int:
        self.current += 1
        return self.current


def mnemonic_from_private_key(private_key: str) -> str:
    """Use the 32-byte master key as BIP-39 entropy, giving a 24-word phrase."""
    key = private_key[2:] if private_key.startswith("0x") else private_key
    return Mnemonic("english").to_mnemonic(bytes.fromhex(key))


def derive_accounts(mnemonic: str, count: int) -> t.List[LocalAccount]:
    """
    Derive `count` accounts at m/44'/60'/0'/0/{i}.
    """
    return [
        Account.from_mnemonic(mnemonic, account_path=f"{DERIVATION_PREFIX}/{i}")
        for i in range(count)
    ]


def pair_accounts(accounts: t.Sequence[LocalAccount]) -> t.List[AccountPair]:
    """Even-indexed accounts are senders (A), the following odd one is B."""
    if len(accounts) % 2:
        raise ValueError(f"Need an even number of accounts, got {len(accounts)}")
    return [
        AccountPair(index=i // 2, account_a=accounts[i], account_b=accounts[i + 1])
        for i in range(0, len(accounts), 2)
    ]


def derive_pairs(private_key: str, parallel: int) -> t.List[AccountPair]:
    mnemonic = mnemonic_from_private_key(private_key)
    return pair_accounts(derive_accounts(mnemonic, parallel * 2))
