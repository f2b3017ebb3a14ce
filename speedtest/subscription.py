"""
WebSocket block subscription for USDC Speedtest.
One `newHeads` subscription, read on a background thread, fanned out to listeners.
"""
import json
import threading
import typing as t

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect

from config import WS_CONNECT_TIMEOUT_S
from .errors import SubscriptionError

BlockListener = t.Callable[[t.Mapping[str, t.Any]], None]
CloseListener = t.Callable[[], None]


class BlockSubscription:
    """
    Delivers every new block header to the registered listeners.

    Usage:
        subscription = BlockSubscription.connect("wss://...")
        subscription.on_block(lambda header: ...)
        subscription.on_close(lambda: ...)
        # ... run load ...
        subscription.close()

    Listeners run on the reader thread and must return quickly.
    """

    def __init__(self, ws: t.Any, subscription_id: str) -> None:
        self.subscription_id = subscription_id
        self.blocks_seen = 0
        self._ws = ws
        self._lock = threading.Lock()
        self._block_listeners: t.List[BlockListener] = []
        self._close_listeners: t.List[CloseListener] = []
        self._closed = threading.Event()
        self._closing = False
        self._thread = threading.Thread(
            target=self._read_loop,
            name="block-subscription",
            daemon=True,
        )

    @classmethod
    def connect(cls, ws_url: str, timeout: float = WS_CONNECT_TIMEOUT_S) -> "BlockSubscription":
        """
        Open the socket and subscribe, giving up after `timeout` seconds.

        Raises:
            SubscriptionError: connection, handshake or subscribe call failed.
        """
        try:
            ws = connect(ws_url, open_timeout=timeout, max_size=None)
        except (OSError, TimeoutError, WebSocketException) as e:
            raise SubscriptionError(f"could not connect to {ws_url}: {e}") from e

        try:
            ws.send(json.dumps({
                "jsonrpc": "2.0",
                "id": 1,
                "method": "eth_subscribe",
                "params": ["newHeads"],
            }))
            reply = json.loads(ws.recv(timeout=timeout))
        except (TimeoutError, ValueError, WebSocketException) as e:
            ws.close()
            raise SubscriptionError(f"eth_subscribe on {ws_url} failed: {e}") from e

        if not isinstance(reply, dict) or "result" not in reply:
            ws.close()
            error = reply.get("error") if isinstance(reply, dict) else reply
            raise SubscriptionError(f"eth_subscribe on {ws_url} rejected: {error}")

        subscription = cls(ws, reply["result"])
        subscription.start()
        print(f"[Subscription] newHeads sub id: {subscription.subscription_id}")
        return subscription

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(self) -> None:
        self._thread.start()

    def on_block(self, listener: BlockListener) -> None:
        with self._lock:
            self._block_listeners.append(listener)

    def on_close(self, listener: CloseListener) -> None:
        """Register a teardown callback; called at once if already closed."""
        with self._lock:
            if not self._closed.is_set():
                self._close_listeners.append(listener)
                return
        listener()

    def _read_loop(self) -> None:
        try:
            for raw in self._ws:
                try:
                    msg = json.loads(raw)
                except ValueError:
                    continue
                if not isinstance(msg, dict) or msg.get("method") != "eth_subscription":
                    continue
                params = msg.get("params") or {}
                if params.get("subscription") != self.subscription_id:
                    continue
                self._emit_block(params.get("result") or {})
        except ConnectionClosed as e:
            if not self._closing:
                print(f"[Subscription] Warning: connection closed: {e}")
        finally:
            self._mark_closed()

    def _emit_block(self, header: t.Mapping[str, t.Any]) -> None:
        with self._lock:
            self.blocks_seen += 1
            listeners = list(self._block_listeners)
        for listener in listeners:
            listener(header)

    def _mark_closed(self) -> None:
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()
            listeners, self._close_listeners = self._close_listeners, []
        for listener in listeners:
            listener()

    def close(self) -> None:
        self._closing = True
        self._ws.close()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=5.0)
        self._mark_closed()
