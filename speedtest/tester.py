"""
Transfer loop for USDC Speedtest.
One tester owns one account pair and bounces the token unit A→B→A until stopped.
"""
import functools
import time
import typing as t
from dataclasses import dataclass, field
from enum import Enum

from eth_account.signers.local import LocalAccount

from config import LATENCY_EMA_WEIGHT, MAX_RETRIES, RETRY_BASE_S
from .cancellation import StopSignal
from .confirmation import ConfirmationStrategy, Receipt
from .errors import is_transient, short_reason
from .identity import AccountPair, NonceState
from .network import LedgerClient, SubmittedTransfer
from .traffic_curve import TrafficPacer
from .transfer import Direction, TokenTransfer


@dataclass(frozen=True)
class TransferRecord:
    tx_hash: str
    latency_ms: float
    gas_used: int
    direction: Direction


@dataclass
class TesterResult:
    pair_index: int
    transactions: t.List[TransferRecord] = field(default_factory=list)
    # True if the tester ran until the stop signal, False if it errored out
    completed_cleanly: bool = True
    # False only when the return leg failed and the unit was left on B
    unit_on_a: bool = True


class _Outcome(Enum):
    SUCCEEDED = "succeeded"
    STOPPED = "stopped"
    FAILED = "failed"


class Tester:
    """
    Runs the back-and-forth transfer loop for a single pair.

    Precondition: account A holds the token unit and both accounts hold gas.

    Nonces are read once and then tracked locally; a nonce only advances after
    its transfer is confirmed, so every retry reuses it. The stop signal is
    read between attempts only, so a submitted transfer is always seen through.
    """

    def __init__(
        self,
        pair: AccountPair,
        client: LedgerClient,
        transfer: TokenTransfer,
        strategy: ConfirmationStrategy,
        stop_signal: StopSignal,
        baseline_s: float,
        max_retries: int = MAX_RETRIES,
        retry_base_s: float = RETRY_BASE_S,
        on_record: t.Optional[t.Callable[[TransferRecord], None]] = None,
        pacer: t.Optional[TrafficPacer] = None,
        sleep: t.Callable[[float], None] = time.sleep,
        clock: t.Callable[[], float] = time.time,
    ) -> None:
        self.pair = pair
        self.client = client
        self.transfer = transfer
        self.strategy = strategy
        self.stop_signal = stop_signal
        self.expected_s = baseline_s
        self.max_retries = max_retries
        self.retry_base_s = retry_base_s
        self._on_record = on_record
        self._pacer = pacer
        self._sleep = sleep
        self._clock = clock
        self._nonce_a: t.Optional[NonceState] = None
        self._nonce_b: t.Optional[NonceState] = None

    @property
    def tag(self) -> str:
        return f"[Tester #{self.pair.index}]"

    # ---------- Retry policy ----------
    def _attempts(
        self,
        operation: t.Callable[[], t.Any],
        label: str,
        honour_stop: bool,
    ) -> t.Tuple[_Outcome, t.Any]:
        """
        Run `operation` up to max_retries + 1 times.

        Transient failures back off for retry_base_s * 2**attempt. Anything
        else, or the last transient failure, ends with FAILED.
        """
        for attempt in range(self.max_retries + 1):
            if honour_stop and self.stop_signal.stopped:
                return _Outcome.STOPPED, None
            try:
                return _Outcome.SUCCEEDED, operation()
            except Exception as e:
                if honour_stop and self.stop_signal.stopped:
                    return _Outcome.STOPPED, None
                if is_transient(e) and attempt < self.max_retries:
                    self._sleep(self.retry_base_s * 2 ** attempt)
                    continue
                print(f"  {self.tag} error ({label}): {short_reason(e)}")
                return _Outcome.FAILED, None
        return _Outcome.FAILED, None

    # ---------- Single transfer ----------
    def _send(
        self,
        sender: LocalAccount,
        receiver_address: str,
        nonce: NonceState,
    ) -> t.Tuple[SubmittedTransfer, Receipt]:
        signed = self.transfer.sign(sender, receiver_address, nonce.current)
        submitted = self.client.submit(signed)
        receipt = self.strategy.wait_for_confirmation(self.client, submitted, self.expected_s)
        self._learn(self._clock() - submitted.submitted_at)
        return submitted, receipt

    def _learn(self, observed_s: float) -> None:
        """Fold one confirmation time into the moving estimate used for polling."""
        self.expected_s = (
            self.expected_s * (1 - LATENCY_EMA_WEIGHT) + observed_s * LATENCY_EMA_WEIGHT
        )

    # ---------- Lifecycle ----------
    def _fetch_nonces(self) -> _Outcome:
        a, b = self.pair.account_a, self.pair.account_b
        outcome, nonce_a = self._attempts(
            functools.partial(self.client.get_nonce, a.address), "nonce A", honour_stop=True
        )
        if outcome is not _Outcome.SUCCEEDED:
            return outcome
        outcome, nonce_b = self._attempts(
            functools.partial(self.client.get_nonce, b.address), "nonce B", honour_stop=True
        )
        if outcome is not _Outcome.SUCCEEDED:
            return outcome
        self._nonce_a = NonceState(a.address, nonce_a)
        self._nonce_b = NonceState(b.address, nonce_b)
        return _Outcome.SUCCEEDED

    def _return_unit(self) -> bool:
        """Send the unit back to A; never raises, ignores the stop signal."""
        outcome, _ = self._attempts(
            functools.partial(
                self._send, self.pair.account_b, self.pair.account_a.address, self._nonce_b
            ),
            f"return {Direction.B_TO_A.value}",
            honour_stop=False,
        )
        if outcome is _Outcome.SUCCEEDED:
            self._nonce_b.advance()
            return True
        print(f"  {self.tag} failed to return USDC to sender wallet")
        return False

    def run(self) -> TesterResult:
        result = TesterResult(pair_index=self.pair.index)

        outcome = self._fetch_nonces()
        if outcome is _Outcome.FAILED:
            result.completed_cleanly = False
        if outcome is not _Outcome.SUCCEEDED:
            return result

        on_a = True
        while not self.stop_signal.stopped:
            if on_a:
                sender, receiver, nonce = self.pair.account_a, self.pair.account_b, self._nonce_a
                direction = Direction.A_TO_B
            else:
                sender, receiver, nonce = self.pair.account_b, self.pair.account_a, self._nonce_b
                direction = Direction.B_TO_A

            started = self._clock()
            outcome, sent = self._attempts(
                functools.partial(self._send, sender, receiver.address, nonce),
                direction.value,
                honour_stop=True,
            )
            if outcome is _Outcome.STOPPED:
                break
            if outcome is _Outcome.FAILED:
                result.completed_cleanly = False
                break

            submitted, receipt = sent
            record = TransferRecord(
                tx_hash=submitted.tx_hash,
                latency_ms=(self._clock() - started) * 1000.0,
                gas_used=int(receipt["gasUsed"]),
                direction=direction,
            )
            result.transactions.append(record)
            if self._on_record is not None:
                self._on_record(record)
            nonce.advance()
            on_a = not on_a

            if self._pacer is not None:
                # Idle without missing the stop signal
                self.stop_signal.wait(self._pacer.idle_s(self.expected_s))

        if not on_a:
            on_a = self._return_unit()
        result.unit_on_a = on_a
        return result


def run_tester(
    pair: AccountPair,
    client: LedgerClient,
    transfer: TokenTransfer,
    strategy: ConfirmationStrategy,
    stop_signal: StopSignal,
    baseline_s: float,
    **kwargs: t.Any,
) -> TesterResult:
    return Tester(pair, client, transfer, strategy, stop_signal, baseline_s, **kwargs).run()
