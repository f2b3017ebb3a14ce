"""
The timed payload for USDC Speedtest: a fixed 0.01 USDC ERC-20 transfer.
"""
import typing as t
from dataclasses import dataclass
from enum import Enum

from eth_account.signers.local import LocalAccount
from web3 import Web3

from config import TRANSFER_GAS_LIMIT, USDC_CENT, USDC_DECIMALS
from .network import ERC20_ABI


class Direction(Enum):
    A_TO_B = "A→B"
    B_TO_A = "B→A"


@dataclass(frozen=True)
class SignedTransfer:
    raw_transaction: bytes
    tx_hash: str


class TokenTransfer:
    """
    Builds and signs the transfer locally.

    Zero-RPC principle: gas, gasPrice, nonce and chainId are always supplied,
    so building a transaction never touches the endpoint.
    """

    def __init__(
        self,
        token_address: str,
        chain_id: int,
        gas_price: int,
        amount: int = USDC_CENT,
        gas_limit: int = TRANSFER_GAS_LIMIT,
    ) -> None:
        self.token_address = Web3.to_checksum_address(token_address)
        self.chain_id = chain_id
        self.gas_price = gas_price
        self.amount = amount
        self.gas_limit = gas_limit
        # Offline instance; used for ABI encoding only
        self._contract = Web3().eth.contract(address=self.token_address, abi=ERC20_ABI)

    def sign(self, account: LocalAccount, to: str, nonce: int) -> SignedTransfer:
        tx_params = self._contract.functions.transfer(to, self.amount).build_transaction(
            {
                "from": account.address,
                "nonce": nonce,
                "gas": self.gas_limit,
                "gasPrice": self.gas_price,
                "chainId": self.chain_id,
            }
        )
        signed = account.sign_transaction(tx_params)
        return SignedTransfer(
            raw_transaction=signed.raw_transaction,
            tx_hash=Web3.to_hex(signed.hash),
        )


def format_usdc(amount: int) -> str:
    whole, frac = divmod(amount, 10 ** USDC_DECIMALS)
    return f"${whole}.{frac:0{USDC_DECIMALS}d}"
