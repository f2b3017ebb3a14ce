import json

import pytest

from speedtest import subscription as subscription_module
from speedtest.errors import SubscriptionError
from speedtest.subscription import BlockSubscription

from fakes import FakeWebSocket


def head(sub_id, number):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": sub_id, "result": {"number": hex(number)}},
    })


def test_reader_delivers_matching_heads_then_closes():
    ws = FakeWebSocket(frames=[
        head("0xsub", 1),
        "not json",
        head("0xother", 2),
        json.dumps({"jsonrpc": "2.0", "id": 9, "result": True}),
        head("0xsub", 3),
    ])
    sub = BlockSubscription(ws, "0xsub")
    headers, closes = [], []
    sub.on_block(headers.append)
    sub.on_close(lambda: closes.append(True))

    sub.start()
    sub._thread.join(timeout=5)

    assert [h["number"] for h in headers] == ["0x1", "0x3"]
    assert sub.blocks_seen == 2
    assert sub.closed
    assert closes == [True]


def test_on_close_after_close_runs_immediately():
    sub = BlockSubscription(FakeWebSocket(), "0xsub")
    sub.start()
    sub.close()

    closes = []
    sub.on_close(lambda: closes.append(True))
    assert closes == [True]


def test_connect_subscribes_to_new_heads(monkeypatch):
    ws = FakeWebSocket(reply=json.dumps({"jsonrpc": "2.0", "id": 1, "result": "0xabc"}))
    monkeypatch.setattr(subscription_module, "connect", lambda url, **kwargs: ws)

    sub = BlockSubscription.connect("wss://node", timeout=1.0)
    try:
        assert sub.subscription_id == "0xabc"
        request = json.loads(ws.sent[0])
        assert request["method"] == "eth_subscribe"
        assert request["params"] == ["newHeads"]
    finally:
        sub.close()


def test_connect_rejected_subscription(monkeypatch):
    ws = FakeWebSocket(reply=json.dumps({
        "jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "method not found"},
    }))
    monkeypatch.setattr(subscription_module, "connect", lambda url, **kwargs: ws)

    with pytest.raises(SubscriptionError, match="rejected"):
        BlockSubscription.connect("wss://node", timeout=1.0)
    assert ws.closed


def test_connect_timeout_waiting_for_reply(monkeypatch):
    ws = FakeWebSocket(reply=None)
    monkeypatch.setattr(subscription_module, "connect", lambda url, **kwargs: ws)

    with pytest.raises(SubscriptionError):
        BlockSubscription.connect("wss://node", timeout=0.1)
    assert ws.closed


def test_connect_refused(monkeypatch):
    def refuse(url, **kwargs):
        raise ConnectionRefusedError("refused")

    monkeypatch.setattr(subscription_module, "connect", refuse)

    with pytest.raises(SubscriptionError, match="could not connect"):
        BlockSubscription.connect("wss://node")
