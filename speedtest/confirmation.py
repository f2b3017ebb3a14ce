"""
Confirmation detection for USDC Speedtest.
Decides when a submitted transfer is final: adaptive polling, block-subscription
fan-out, or immediate finality.
"""
import abc
import threading
import time
import typing as t
from enum import Enum

from config import (
    MAX_POLL_INTERVAL_S,
    MIN_POLL_INTERVAL_S,
    POLL_INITIAL_FRACTION,
    WS_CONNECT_TIMEOUT_S,
)
from .errors import OnChainRevert, SubscriptionError
from .network import LedgerClient, SubmittedTransfer
from .subscription import BlockSubscription

Receipt = t.Mapping[str, t.Any]


class ConfirmationMode(Enum):
    POLLING = "polling"
    EVENT = "event"
    IMMEDIATE = "immediate"


def _ensure_succeeded(receipt: Receipt, tx_hash: str) -> Receipt:
    if receipt.get("status") == 0:
        raise OnChainRevert(tx_hash)
    return receipt


class ConfirmationStrategy(abc.ABC):
    mode: ConfirmationMode

    @abc.abstractmethod
    def wait_for_confirmation(
        self,
        client: LedgerClient,
        submitted: SubmittedTransfer,
        expected_s: float,
    ) -> Receipt:
        """
        Block until `submitted` is final and return its receipt.

        Raises:
            OnChainRevert: the ledger included the transfer but it failed.
            EndpointError: a receipt read failed.
        """

    def close(self) -> None:
        pass


class PollingConfirmation(ConfirmationStrategy):
    """
    Waits ~80% of the expected confirmation time, then polls at tight intervals.
    Most transfers are not final before that, so early reads are skipped.
    """

    mode = ConfirmationMode.POLLING

    def __init__(
        self,
        min_interval: float = MIN_POLL_INTERVAL_S,
        max_interval: float = MAX_POLL_INTERVAL_S,
        sleep: t.Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self.max_interval = max_interval
        self._sleep = sleep

    def initial_delay(self, expected_s: float) -> float:
        return max(expected_s * POLL_INITIAL_FRACTION, self.min_interval)

    def poll_interval(self, expected_s: float) -> float:
        return max(min(expected_s / 4, self.max_interval), self.min_interval)

    def wait_for_confirmation(
        self,
        client: LedgerClient,
        submitted: SubmittedTransfer,
        expected_s: float,
    ) -> Receipt:
        self._sleep(self.initial_delay(expected_s))
        interval = self.poll_interval(expected_s)
        while True:
            receipt = client.get_receipt(submitted.tx_hash)
            if receipt is not None:
                return _ensure_succeeded(receipt, submitted.tx_hash)
            self._sleep(interval)


class BlockSubscriptionConfirmation(ConfirmationStrategy):
    """
    One block subscription wakes every waiting tester on each new block.

    Each waiter then re-reads only its own receipt (one call per waiter per
    block). A waiter is registered before it reads, so a block landing between
    the read and the wait still wakes it, and it is removed from the registry
    as soon as it wakes. Teardown wakes everyone; waiters still pending finish
    by polling.
    """

    mode = ConfirmationMode.EVENT

    def __init__(
        self,
        subscription: BlockSubscription,
        fallback: t.Optional[PollingConfirmation] = None,
    ) -> None:
        self._subscription = subscription
        self._fallback = fallback or PollingConfirmation()
        self._lock = threading.Lock()
        self._waiters: t.Set[threading.Event] = set()
        self._closed = False
        self._closing = False
        subscription.on_block(self._wake_all)
        subscription.on_close(self._teardown)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def waiter_count(self) -> int:
        with self._lock:
            return len(self._waiters)

    def _register(self) -> threading.Event:
        waiter = threading.Event()
        with self._lock:
            self._waiters.add(waiter)
        return waiter

    def _unregister(self, waiter: threading.Event) -> None:
        with self._lock:
            self._waiters.discard(waiter)

    def _wake_all(self, _header: t.Optional[t.Mapping[str, t.Any]] = None) -> None:
        with self._lock:
            waiters = list(self._waiters)
        for waiter in waiters:
            waiter.set()

    def _teardown(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            waiters = list(self._waiters)
            deliberate = self._closing
        if not deliberate:
            print("[Receipt] Warning: block subscription lost, falling back to polling")
        for waiter in waiters:
            waiter.set()

    def wait_for_confirmation(
        self,
        client: LedgerClient,
        submitted: SubmittedTransfer,
        expected_s: float,
    ) -> Receipt:
        while True:
            waiter = self._register()
            try:
                receipt = client.get_receipt(submitted.tx_hash)
                if receipt is not None:
                    return _ensure_succeeded(receipt, submitted.tx_hash)
                if self.closed:
                    break
                waiter.wait()
            finally:
                self._unregister(waiter)

        return self._fallback.wait_for_confirmation(client, submitted, expected_s)

    def close(self) -> None:
        with self._lock:
            self._closing = True
        self._subscription.close()
        self._teardown()


class ImmediateConfirmation(ConfirmationStrategy):
    """
    For instant-finality chains: the receipt is usually readable as soon as
    submission returns. A record returned by submission is used as is;
    otherwise the receipt is read at the minimum interval until it appears,
    with no timeout.
    """

    mode = ConfirmationMode.IMMEDIATE

    def __init__(
        self,
        interval: float = MIN_POLL_INTERVAL_S,
        sleep: t.Callable[[float], None] = time.sleep,
    ) -> None:
        self.interval = interval
        self._sleep = sleep

    def wait_for_confirmation(
        self,
        client: LedgerClient,
        submitted: SubmittedTransfer,
        expected_s: float,
    ) -> Receipt:
        receipt = submitted.receipt
        while receipt is None:
            receipt = client.get_receipt(submitted.tx_hash)
            if receipt is None:
                self._sleep(self.interval)
        return _ensure_succeeded(receipt, submitted.tx_hash)


def select_confirmation_mode(
    immediate_receipt: bool,
    ws_url: t.Optional[str],
) -> ConfirmationMode:
    """
    immediate_receipt -> IMMEDIATE (takes precedence)
    ws_url            -> EVENT
    otherwise         -> POLLING
    """
    if immediate_receipt:
        return ConfirmationMode.IMMEDIATE
    if ws_url:
        return ConfirmationMode.EVENT
    return ConfirmationMode.POLLING


def create_confirmation_strategy(
    immediate_receipt: bool,
    ws_url: t.Optional[str],
    connect: t.Callable[[str, float], BlockSubscription] = BlockSubscription.connect,
    timeout: float = WS_CONNECT_TIMEOUT_S,
) -> ConfirmationStrategy:
    """Build the strategy for one run; a failed subscription downgrades to polling."""
    mode = select_confirmation_mode(immediate_receipt, ws_url)
    if mode is ConfirmationMode.IMMEDIATE:
        return ImmediateConfirmation()
    if mode is ConfirmationMode.EVENT:
        try:
            subscription = connect(ws_url, timeout)
        except SubscriptionError as e:
            print(f"[Receipt] Warning: WebSocket connection failed ({e}), falling back to polling")
            return PollingConfirmation()
        return BlockSubscriptionConfirmation(subscription)
    return PollingConfirmation()
