"""
Error taxonomy for USDC Speedtest.
Structured endpoint errors and the single classifier every retry loop consults.
"""
import json
import typing as t
from dataclasses import dataclass
from enum import Enum

import requests
from web3.exceptions import BadResponseFormat


class ErrorKind(Enum):
    TRANSIENT = "transient"
    REJECTED = "rejected"
    SUBSCRIPTION_FAILURE = "subscription_failure"
    INSUFFICIENCY = "insufficiency"


class SpeedtestError(Exception):
    """Base class for every error raised by the speedtest engine."""


class EndpointError(SpeedtestError):
    """
    A failed round trip to the RPC endpoint.

    Attributes:
        message: Human readable reason as reported by the node or transport.
        code: JSON-RPC error code (int) or a transport tag such as "TIMEOUT".
        status: HTTP status code when the failure came with one.
    """

    def __init__(
        self,
        message: str,
        code: t.Optional[t.Union[int, str]] = None,
        status: t.Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class OnChainRevert(SpeedtestError):
    """The ledger accepted the transfer but marked it failed."""

    def __init__(self, tx_hash: str) -> None:
        super().__init__(f"transaction {tx_hash} reverted on-chain")
        self.tx_hash = tx_hash


class SubscriptionError(SpeedtestError):
    """The block subscription could not be established or was lost."""


@dataclass(frozen=True)
class Shortfall:
    label: str
    address: str
    asset: str
    have: int
    need: int

    @property
    def missing(self) -> int:
        return max(self.need - self.have, 0)


class InsufficientFundsError(SpeedtestError):
    """One or more accounts cannot cover the run; nothing was started."""

    def __init__(self, shortfalls: t.Sequence[Shortfall]) -> None:
        self.shortfalls = list(shortfalls)
        lines = [
            f"{s.label} {s.address} needs {s.need} {s.asset}, has {s.have}"
            for s in self.shortfalls
        ]
        super().__init__(
            f"{len(self.shortfalls)} account(s) under-funded:\n  " + "\n  ".join(lines)
        )


# Transport tags and JSON-RPC codes that always mean "try again"
TRANSIENT_CODES: t.FrozenSet[t.Union[int, str]] = frozenset({
    "TIMEOUT",
    "NETWORK_ERROR",
    "SERVER_ERROR",
    "BAD_RESPONSE",
    "MISSING_RESPONSE",
    -32005,  # limit exceeded
    429,
})

# Last resort for nodes that only put the reason in free text
TRANSIENT_MESSAGES: t.Tuple[str, ...] = (
    "timeout",
    "timed out",
    "rate limit",
    "too many requests",
    "429",
    "econnreset",
    "econnrefused",
    "connection aborted",
    "connection refused",
    "connection reset",
    "socket hang up",
    "network error",
    "missing response",
    "bad response",
    "bad gateway",
    "service unavailable",
    "temporarily unavailable",
    "available sockets",
)

ALREADY_KNOWN_MESSAGES: t.Tuple[str, ...] = (
    "already known",
    "known transaction",
    "already imported",
)


def _rpc_error_payload(exc: BaseException) -> t.Optional[t.Dict[str, t.Any]]:
    """Extract the JSON-RPC `error` object web3 attaches to a failed call."""
    response = getattr(exc, "rpc_response", None)
    if isinstance(response, dict) and isinstance(response.get("error"), dict):
        return response["error"]
    if exc.args and isinstance(exc.args[0], dict) and "message" in exc.args[0]:
        return exc.args[0]
    return None


def to_endpoint_error(exc: BaseException) -> EndpointError:
    """
    Convert a web3 / requests failure into an EndpointError.

    The machine-checkable part (JSON-RPC code, HTTP status, transport tag) is
    kept separately from the message so classification does not need to parse
    text when the endpoint gave something better.
    """
    if isinstance(exc, EndpointError):
        return exc

    payload = _rpc_error_payload(exc)
    if payload is not None:
        err = EndpointError(str(payload.get("message", payload)), code=payload.get("code"))
    elif isinstance(exc, requests.exceptions.HTTPError):
        status = exc.response.status_code if exc.response is not None else None
        code = "SERVER_ERROR" if status is not None and status >= 500 else status
        err = EndpointError(str(exc), code=code, status=status)
    elif isinstance(exc, (requests.exceptions.Timeout, TimeoutError)):
        err = EndpointError(str(exc) or "request timed out", code="TIMEOUT")
    elif isinstance(exc, (requests.exceptions.ConnectionError, ConnectionError)):
        err = EndpointError(str(exc) or "connection failed", code="NETWORK_ERROR")
    elif isinstance(
        exc,
        (
            BadResponseFormat,
            json.JSONDecodeError,
            requests.exceptions.ChunkedEncodingError,
            requests.exceptions.ContentDecodingError,
        ),
    ):
        err = EndpointError(str(exc) or "bad response", code="BAD_RESPONSE")
    else:
        err = EndpointError(str(exc) or type(exc).__name__)
    err.__cause__ = exc
    return err


def classify_error(exc: BaseException) -> ErrorKind:
    """
    Map any failure seen by the engine onto one ErrorKind.

    Order of evidence: exception type, then code / HTTP status, then message
    text. Anything not recognisably transient is REJECTED.
    """
    if isinstance(exc, InsufficientFundsError):
        return ErrorKind.INSUFFICIENCY
    if isinstance(exc, SubscriptionError):
        return ErrorKind.SUBSCRIPTION_FAILURE
    if isinstance(exc, OnChainRevert):
        return ErrorKind.REJECTED

    err = to_endpoint_error(exc)
    if err.code is not None and err.code in TRANSIENT_CODES:
        return ErrorKind.TRANSIENT
    if err.status is not None and (err.status == 429 or err.status >= 500):
        return ErrorKind.TRANSIENT

    message = err.message.lower()
    if any(token in message for token in TRANSIENT_MESSAGES):
        return ErrorKind.TRANSIENT
    return ErrorKind.REJECTED


def is_transient(exc: BaseException) -> bool:
    return classify_error(exc) is ErrorKind.TRANSIENT


def is_already_known(exc: BaseException) -> bool:
    """True when the node reports it already holds this exact signed transaction."""
    message = to_endpoint_error(exc).message.lower()
    return any(token in message for token in ALREADY_KNOWN_MESSAGES)


def short_reason(exc: BaseException, limit: int = 120) -> str:
    return to_endpoint_error(exc).message[:limit]
