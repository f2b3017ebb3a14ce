"""
In-memory stand-ins for the endpoint, signer and block subscription.
"""
import threading
import time
import typing as t
from types import SimpleNamespace

from speedtest.confirmation import ConfirmationMode, ConfirmationStrategy
from speedtest.errors import EndpointError
from speedtest.identity import AccountPair
from speedtest.network import SubmittedTransfer
from speedtest.transfer import SignedTransfer

RECEIPT = {"status": 1, "gasUsed": 51_000}


def make_pair(index: int = 0) -> AccountPair:
    return AccountPair(
        index=index,
        account_a=SimpleNamespace(address=f"0xA{index}"),
        account_b=SimpleNamespace(address=f"0xB{index}"),
    )


def wait_until(predicate: t.Callable[[], bool], timeout: float = 5.0) -> None:
    deadline = time.time() + timeout
    while not predicate():
        if time.time() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.005)


class Recorder:
    """Drop-in for time.sleep that only remembers what it was asked."""

    def __init__(self, on_call: t.Optional[t.Callable[[float], None]] = None) -> None:
        self.calls: t.List[float] = []
        self._on_call = on_call

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._on_call is not None:
            self._on_call(seconds)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeClient:
    """
    Scripted ledger endpoint.

    `submit_errors` are raised in order by the first submit calls.
    `receipts` maps tx hash to receipt; `default_receipt` answers any other hash.
    `lagging_reads` maps tx hash to how many reads return None before the receipt.
    With `reject_resubmits`, sending a hash twice fails like a node whose nonce
    has already moved on.
    """

    def __init__(
        self,
        submit_errors: t.Sequence[BaseException] = (),
        default_receipt: t.Optional[t.Mapping[str, t.Any]] = RECEIPT,
        gas_price: int = 1_000_000_000,
        gas_price_errors: t.Sequence[BaseException] = (),
        reject_resubmits: bool = False,
    ) -> None:
        self.submit_errors = list(submit_errors)
        self.gas_price_errors = list(gas_price_errors)
        self.reject_resubmits = reject_resubmits
        self.lagging_reads: t.Dict[str, int] = {}
        self.default_receipt = default_receipt
        self.receipts: t.Dict[str, t.Mapping[str, t.Any]] = {}
        self.nonces: t.Dict[str, int] = {}
        self.submitted: t.List[str] = []
        self.receipt_reads: t.List[str] = []
        self._gas_price = gas_price
        self._lock = threading.Lock()

    def submit(self, signed: SignedTransfer) -> SubmittedTransfer:
        with self._lock:
            if self.submit_errors:
                raise self.submit_errors.pop(0)
            if self.reject_resubmits and signed.tx_hash in self.submitted:
                raise EndpointError("nonce too low", code=-32000)
            self.submitted.append(signed.tx_hash)
        return SubmittedTransfer(tx_hash=signed.tx_hash, submitted_at=time.time())

    def get_receipt(self, tx_hash: str) -> t.Optional[t.Mapping[str, t.Any]]:
        with self._lock:
            self.receipt_reads.append(tx_hash)
            if self.lagging_reads.get(tx_hash, 0) > 0:
                self.lagging_reads[tx_hash] -= 1
                return None
            return self.receipts.get(tx_hash, self.default_receipt)

    def get_nonce(self, address: str) -> int:
        return self.nonces.get(address, 0)

    def gas_price(self) -> int:
        if self.gas_price_errors:
            raise self.gas_price_errors.pop(0)
        return self._gas_price


class FakeTransfer:
    def __init__(self) -> None:
        self.signed: t.List[t.Tuple[str, str, int]] = []

    def sign(self, account: t.Any, to: str, nonce: int) -> SignedTransfer:
        self.signed.append((account.address, to, nonce))
        return SignedTransfer(raw_transaction=b"", tx_hash=f"0x{account.address}-{nonce}")


class FakeStrategy(ConfirmationStrategy):
    """Confirms at once; `hook` runs inside every wait, e.g. to fire the stop signal."""

    mode = ConfirmationMode.POLLING

    def __init__(
        self,
        hook: t.Optional[t.Callable[[SubmittedTransfer], None]] = None,
        delay_s: float = 0.0,
    ) -> None:
        self.hook = hook
        self.delay_s = delay_s
        self.closed = False

    def wait_for_confirmation(self, client, submitted, expected_s):
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.hook is not None:
            self.hook(submitted)
        return client.get_receipt(submitted.tx_hash)

    def close(self) -> None:
        self.closed = True


class FakeSubscription:
    """Exposes the listener hooks BlockSubscription offers, fired by hand."""

    def __init__(self) -> None:
        self.block_listeners: t.List[t.Callable] = []
        self.close_listeners: t.List[t.Callable] = []
        self.close_calls = 0

    def on_block(self, listener: t.Callable) -> None:
        self.block_listeners.append(listener)

    def on_close(self, listener: t.Callable) -> None:
        self.close_listeners.append(listener)

    def emit_block(self, header: t.Optional[t.Mapping[str, t.Any]] = None) -> None:
        for listener in list(self.block_listeners):
            listener(header or {"number": "0x1"})

    def fire_close(self) -> None:
        for listener in list(self.close_listeners):
            listener()

    def close(self) -> None:
        self.close_calls += 1
        self.fire_close()


class FakeWebSocket:
    """Replays canned frames to BlockSubscription's reader thread."""

    def __init__(self, frames: t.Sequence[str] = (), reply: t.Optional[str] = None) -> None:
        self.frames = list(frames)
        self.reply = reply
        self.sent: t.List[str] = []
        self.closed = False

    def send(self, message: str) -> None:
        self.sent.append(message)

    def recv(self, timeout: t.Optional[float] = None) -> str:
        if self.reply is None:
            raise TimeoutError("no reply")
        return self.reply

    def __iter__(self) -> t.Iterator[str]:
        return iter(self.frames)

    def close(self) -> None:
        self.closed = True
