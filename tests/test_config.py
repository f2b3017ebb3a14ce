import pytest

from config import NETWORKS, apply_overrides, get_network, get_network_names


def test_known_networks():
    assert get_network("base").chain_id == 8453
    assert get_network("baseSepolia").estimated_block_time_ms == 2_000
    assert set(get_network_names()) == set(NETWORKS)


def test_unknown_network_lists_available():
    with pytest.raises(ValueError, match="baseSepolia"):
        get_network("nope")


def test_placeholder_network_completed_by_overrides():
    radius = get_network("radius")
    assert not radius.supported

    partial = apply_overrides(radius, rpc="https://rpc.example")
    assert not partial.supported

    full = apply_overrides(radius, rpc="https://rpc.example", usdc_address="0xUSDC", chain_id=1223953)
    assert full.supported
    assert full.immediate_receipt
    assert full.chain_id == 1223953
    # Registry entry is untouched
    assert not get_network("radius").supported


def test_overrides_leave_unset_fields_alone():
    base = get_network("base")
    updated = apply_overrides(base, ws="wss://base.example", immediate_receipt=True)
    assert updated.ws_url == "wss://base.example"
    assert updated.immediate_receipt
    assert updated.rpc_url == base.rpc_url
    assert apply_overrides(base) == base
