"""
Network management for USDC Speedtest.
Pooled HTTP sessions and the Web3-backed ledger client used by every tester.
"""
import threading
import time
import typing as t
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from web3 import Web3
from web3.exceptions import TransactionNotFound
from web3.providers import HTTPProvider

from config import HTTP_BACKOFF_FACTOR, HTTP_POOL_SIZE, HTTP_RETRIES, HTTP_TIMEOUT_S
from .errors import is_already_known, to_endpoint_error

if t.TYPE_CHECKING:
    from .transfer import SignedTransfer

ERC20_ABI: t.List[t.Dict[str, t.Any]] = [
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass(frozen=True)
class SubmittedTransfer:
    tx_hash: str
    submitted_at: float
    # Final record, when the endpoint confirms in the same round trip
    receipt: t.Optional[t.Mapping[str, t.Any]] = None


class LedgerClient:
    """
    The endpoint capabilities the engine consumes, over one Web3 instance.

    Every failure leaves this class as an EndpointError so callers classify a
    single structured type.
    """

    def __init__(self, web3: Web3) -> None:
        self.web3 = web3

    def _call(self, func: t.Callable[..., t.Any], *args: t.Any) -> t.Any:
        try:
            return func(*args)
        except Exception as e:
            raise to_endpoint_error(e) from e

    def submit(self, signed: "SignedTransfer") -> SubmittedTransfer:
        """
        Broadcast a signed transfer and return its hash.

        A node answering "already known" holds these exact bytes from an earlier
        attempt, so the locally computed hash is returned instead of failing.
        """
        submitted_at = time.time()
        try:
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            if is_already_known(e):
                return SubmittedTransfer(tx_hash=signed.tx_hash, submitted_at=submitted_at)
            raise to_endpoint_error(e) from e
        return SubmittedTransfer(tx_hash=Web3.to_hex(tx_hash), submitted_at=submitted_at)

    def get_receipt(self, tx_hash: str) -> t.Optional[t.Mapping[str, t.Any]]:
        """Return the receipt, or None while the transfer is not yet final."""
        try:
            return self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except Exception as e:
            raise to_endpoint_error(e) from e

    def get_nonce(self, address: str) -> int:
        return self._call(self.web3.eth.get_transaction_count, address, "pending")

    def get_balance(self, address: str) -> int:
        return self._call(self.web3.eth.get_balance, address)

    def get_token_balance(self, token_address: str, address: str) -> int:
        token = self.web3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
        return self._call(token.functions.balanceOf(address).call)

    def gas_price(self) -> int:
        return self._call(lambda: self.web3.eth.gas_price)


class ConnectionPool:
    """
    Owns every HTTP channel opened against one RPC endpoint.

    `shared()` hands out the single pooled client all testers may use at once.
    `dedicated()` opens an independent session, so a slow synchronous call on
    one tester never queues behind another tester's requests.
    """

    def __init__(
        self,
        rpc_url: str,
        pool_size: int = HTTP_POOL_SIZE,
        timeout: int = HTTP_TIMEOUT_S,
    ) -> None:
        self.rpc_url = rpc_url
        self.pool_size = pool_size
        self.timeout = timeout
        self._lock = threading.RLock()
        self._sessions: t.List[requests.Session] = []
        self._shared: t.Optional[LedgerClient] = None

    def _create_session(self, pool_size: int) -> requests.Session:
        """
        Creates an HTTP session with connection pooling and connect retries.
        Transfers are never resent by the adapter; POST is not retried.
        """
        session = requests.Session()
        adapter = HTTPAdapter(
            pool_connections=pool_size,
            pool_maxsize=pool_size,
            max_retries=Retry(
                total=HTTP_RETRIES,
                backoff_factor=HTTP_BACKOFF_FACTOR,
                status_forcelist=[502, 503, 504],
            ),
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        with self._lock:
            self._sessions.append(session)
        return session

    def _client(self, session: requests.Session) -> LedgerClient:
        provider = HTTPProvider(
            self.rpc_url,
            session=session,
            request_kwargs={"timeout": self.timeout},
        )
        return LedgerClient(Web3(provider))

    def shared(self) -> LedgerClient:
        with self._lock:
            if self._shared is None:
                self._shared = self._client(self._create_session(self.pool_size))
            return self._shared

    def dedicated(self) -> LedgerClient:
        return self._client(self._create_session(1))

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
            self._shared = None
        for session in sessions:
            session.close()

    def __enter__(self) -> "ConnectionPool":
        return self

    def __exit__(self, *exc_info: t.Any) -> None:
        self.close()
