import pytest
from eth_abi import encode

from chain.client import ChainClient, GasPrice
from chain.errors import (
    CallReverted,
    InsufficientFunds,
    NonceTooLow,
    RPCError,
    UserRejected,
)
from core.base_types import Address, TransactionRequest


class _Response:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


def _error_response(message, code=-32000, data=None):
    error = {"message": message, "code": code}
    if data is not None:
        error["data"] = data
    return _Response({"error": error})


def _client(monkeypatch, fake_post, **kwargs):
    client = ChainClient(["https://rpc.example"], **kwargs)
    monkeypatch.setattr(client._session, "post", fake_post)
    return client


DEAD = Address.from_string("0x000000000000000000000000000000000000dead")


def test_rpc_retries_then_success(monkeypatch):
    calls = {"count": 0}

    def fake_post(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] == 1:
            import requests

            raise requests.Timeout("boom")
        return _Response({"result": "0x1"})

    client = _client(monkeypatch, fake_post, max_retries=2)
    monkeypatch.setattr("chain.client.time.sleep", lambda *_: None)

    assert client._rpc_call("eth_blockNumber", []) == "0x1"
    assert calls["count"] == 2


def test_rpc_error_classification_nonce_too_low(monkeypatch):
    client = _client(monkeypatch, lambda *a, **k: _error_response("nonce too low"))

    with pytest.raises(NonceTooLow):
        client._rpc_call("eth_sendRawTransaction", ["0x00"])


def test_rpc_error_classification_insufficient_funds(monkeypatch):
    client = _client(
        monkeypatch,
        lambda *a, **k: _error_response("insufficient funds for gas * price + value"),
    )

    with pytest.raises(InsufficientFunds):
        client._rpc_call("eth_sendRawTransaction", ["0x00"])


def test_user_rejection_is_classified_by_code(monkeypatch):
    client = _client(
        monkeypatch, lambda *a, **k: _error_response("User denied transaction", code=4001)
    )

    with pytest.raises(UserRejected) as exc:
        client._rpc_call("eth_sendTransaction", [{}])

    assert exc.value.code == 4001


def test_revert_reason_decoded_from_error_data(monkeypatch):
    data = "0x08c379a0" + encode(["string"], ["Too little received"]).hex()
    client = _client(
        monkeypatch, lambda *a, **k: _error_response("execution reverted", code=3, data=data)
    )

    with pytest.raises(CallReverted) as exc:
        client.call(TransactionRequest(to=DEAD, data=b""))

    assert exc.value.reason == "Too little received"


def test_revert_reason_parsed_from_message(monkeypatch):
    client = _client(
        monkeypatch,
        lambda *a, **k: _error_response("execution reverted: UniswapV2Router: EXPIRED"),
    )

    with pytest.raises(CallReverted) as exc:
        client.estimate_gas(TransactionRequest(to=DEAD, data=b""))

    assert exc.value.reason == "UniswapV2Router: EXPIRED"


def test_rpc_error_payload_exposed(monkeypatch):
    client = _client(
        monkeypatch,
        lambda *a, **k: _Response({"error": {"message": "boom", "code": 123, "data": "0xdead"}}),
    )

    with pytest.raises(RPCError) as exc:
        client._rpc_call("eth_call", [])

    assert exc.value.code == 123
    assert exc.value.data == "0xdead"


def test_get_gas_price_batches_block_and_tip(monkeypatch):
    def fake_post(*args, **kwargs):
        batch = kwargs["json"]
        assert [entry["method"] for entry in batch] == [
            "eth_getBlockByNumber",
            "eth_maxPriorityFeePerGas",
        ]
        return _Response(
            [{"id": 2, "result": "0x64"}, {"id": 1, "result": {"baseFeePerGas": "0x3e8"}}]
        )

    gas = _client(monkeypatch, fake_post).get_gas_price()
    assert gas == GasPrice(base_fee=1_000, suggested_priority_fee=100)
    assert [gas.priority_fee(p) for p in ("low", "medium", "high")] == [80, 100, 150]
    assert gas.max_fee("medium") == 1_300
    with pytest.raises(ValueError, match="priority"):
        gas.priority_fee("urgent")
    with pytest.raises(ValueError, match="headroom"):
        gas.max_fee(headroom_bips=9_000)


def test_call_returns_bytes(monkeypatch):
    client = _client(monkeypatch, lambda *a, **k: _Response({"result": "0x1234"}))
    assert client.call(TransactionRequest(to=DEAD, data=b"")) == bytes.fromhex("1234")


def test_estimate_gas_sends_hex_value_and_sender(monkeypatch):
    seen = {}

    def fake_post(*args, **kwargs):
        seen.update(kwargs["json"]["params"][0])
        return _Response({"result": "0x5208"})

    client = _client(monkeypatch, fake_post)
    gas = client.estimate_gas(TransactionRequest(to=DEAD, data=b"\x01", value=10, sender=DEAD))

    assert gas == 21000
    assert seen["value"] == "0xa"
    assert seen["from"] == DEAD.checksum
    assert seen["data"] == "0x01"


def test_call_many_keeps_order_and_tolerates_reverts(monkeypatch):
    def fake_post(*args, **kwargs):
        return _Response(
            [
                {"id": 2, "error": {"message": "execution reverted", "code": 3}},
                {"id": 1, "result": "0x01"},
                {"id": 3, "result": "0x02"},
            ]
        )

    client = _client(monkeypatch, fake_post)
    tx = TransactionRequest(to=DEAD, data=b"")

    assert client.call_many([tx, tx, tx]) == [b"\x01", None, b"\x02"]


def test_call_many_empty_makes_no_request(monkeypatch):
    def fake_post(*args, **kwargs):
        raise AssertionError("no request expected")

    assert _client(monkeypatch, fake_post).call_many([]) == []
