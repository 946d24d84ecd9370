"""Ethereum JSON-RPC client with retries and error classification."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import requests

from core.base_types import BIPS_BASE, Address, TransactionRequest

from .abi import decode_revert_reason, hex_to_bytes
from .errors import (
    USER_REJECTED_CODE,
    CallReverted,
    ChainError,
    InsufficientFunds,
    NonceTooLow,
    ReplacementUnderpriced,
    RPCError,
    UserRejected,
)

logger = logging.getLogger(__name__)

_REVERT_PREFIX = "execution reverted"

# tip paid per priority, relative to the node's eth_maxPriorityFeePerGas
PRIORITY_TIERS_BIPS = {"low": 8_000, "medium": 10_000, "high": 15_000}
# max fee leaves room for the base fee to rise 20% before inclusion
BASE_FEE_HEADROOM_BIPS = 12_000


@dataclass(frozen=True)
class GasPrice:
    """EIP-1559 fee snapshot: latest base fee and the node's suggested tip."""

    base_fee: int
    suggested_priority_fee: int

    def priority_fee(self, priority: str = "medium") -> int:
        tier = PRIORITY_TIERS_BIPS.get(priority)
        if tier is None:
            raise ValueError("priority must be low, medium, or high")
        return self.suggested_priority_fee * tier // BIPS_BASE

    def max_fee(self, priority: str = "medium", headroom_bips: int = BASE_FEE_HEADROOM_BIPS) -> int:
        if headroom_bips < BIPS_BASE:
            raise ValueError("headroom must be at least 100%")
        return self.base_fee * headroom_bips // BIPS_BASE + self.priority_fee(priority)


class ChainClient:
    """
    Ethereum RPC client used by pool loading, quoting and submission.

    Every request walks the configured endpoints in order, retrying
    timeouts, dropped connections and malformed bodies with exponential
    backoff before moving to the next URL. JSON-RPC errors are never
    retried: they are classified into the ``ChainError`` hierarchy, and
    reverts carry their decoded reason.
    """

    def __init__(
        self,
        rpc_urls: list[str],
        timeout: int = 30,
        max_retries: int = 3,
    ):
        if not rpc_urls:
            raise ValueError("rpc_urls must not be empty")
        self._rpc_urls = rpc_urls
        self._timeout = timeout
        self._max_retries = max_retries
        self._session = requests.Session()

    @property
    def rpc_urls(self) -> list[str]:
        return list(self._rpc_urls)

    def get_block_number(self) -> int:
        return _hex_to_int(self._rpc_call("eth_blockNumber", []))

    def get_nonce(self, address: Address, block: str = "pending") -> int:
        return _hex_to_int(self._rpc_call("eth_getTransactionCount", [address.checksum, block]))

    def get_gas_price(self) -> GasPrice:
        latest, tip = self._rpc_batch(
            [("eth_getBlockByNumber", ["latest", False]), ("eth_maxPriorityFeePerGas", [])]
        )
        if not isinstance(latest, dict):
            raise RPCError("latest block missing from response")
        return GasPrice(
            base_fee=_hex_to_int(latest.get("baseFeePerGas", "0x0")),
            suggested_priority_fee=_hex_to_int(tip),
        )

    def estimate_gas(self, tx: TransactionRequest) -> int:
        return _hex_to_int(self._rpc_call("eth_estimateGas", [tx.to_rpc()]))

    def call(self, tx: TransactionRequest, block: str = "latest") -> bytes:
        return _hex_to_bytes(self._rpc_call("eth_call", [tx.to_rpc(), block]))

    def call_many(
        self, txs: list[TransactionRequest], block: str = "latest"
    ) -> list[Optional[bytes]]:
        """
        Batch several eth_calls in one request.

        A reverted call yields ``None`` in its slot instead of failing the
        whole batch.
        """
        if not txs:
            return []
        results = self._rpc_batch(
            [("eth_call", [tx.to_rpc(), block]) for tx in txs], tolerate_reverts=True
        )
        return [None if value is None else _hex_to_bytes(value) for value in results]

    def send_transaction(self, signed_tx: bytes) -> str:
        return str(self._rpc_call("eth_sendRawTransaction", [f"0x{signed_tx.hex()}"]))

    def _rpc_call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        data = self._post(payload, method)
        if not isinstance(data, dict):
            raise RPCError(f"Invalid response to {method}")
        if "error" in data:
            self._raise_rpc_error(data["error"])
        return data.get("result")

    def _rpc_batch(
        self, calls: list[tuple[str, list[Any]]], tolerate_reverts: bool = False
    ) -> list[Any]:
        payload = [
            {"jsonrpc": "2.0", "id": idx + 1, "method": method, "params": params}
            for idx, (method, params) in enumerate(calls)
        ]
        data = self._post(payload, f"batch({len(calls)})")
        if not isinstance(data, list):
            raise RPCError("Invalid batch response")
        # responses may come back in any order
        results: dict[int, Any] = {}
        for entry in data:
            if "error" in entry:
                try:
                    self._raise_rpc_error(entry["error"])
                except CallReverted:
                    if not tolerate_reverts:
                        raise
                    results[int(entry["id"])] = None
                    continue
            results[int(entry["id"])] = entry.get("result")
        return [results.get(idx + 1) for idx in range(len(calls))]

    def _post(self, payload: Any, label: str) -> Any:
        last_error: Optional[Exception] = None
        for url in self._rpc_urls:
            for attempt in range(self._max_retries):
                start = time.perf_counter()
                try:
                    response = self._session.post(url, json=payload, timeout=self._timeout)
                    elapsed = time.perf_counter() - start
                    logger.info("rpc %s %s in %.3fs", label, url, elapsed)
                    if response.status_code >= 400:
                        raise RPCError(f"HTTP {response.status_code} from {url}")
                    return response.json()
                except (requests.Timeout, requests.ConnectionError, json.JSONDecodeError) as exc:
                    last_error = exc
                    logger.debug("rpc %s attempt %d on %s failed: %s", label, attempt + 1, url, exc)
                    self._sleep_backoff(attempt)
        raise ChainError("RPC request failed") from last_error

    def _sleep_backoff(self, attempt: int) -> None:
        time.sleep(0.5 * (2**attempt))

    def _raise_rpc_error(self, error: dict) -> None:
        message = str(error.get("message", "RPC error"))
        code = error.get("code")
        data = error.get("data")
        lowered = message.lower()
        if code == USER_REJECTED_CODE:
            raise UserRejected(message)
        if "insufficient funds" in lowered:
            raise InsufficientFunds(message)
        if "nonce too low" in lowered:
            raise NonceTooLow(message)
        if "replacement transaction underpriced" in lowered:
            raise ReplacementUnderpriced(message)
        if code == 3 or lowered.startswith(_REVERT_PREFIX):
            raise CallReverted(
                message,
                reason=_revert_reason(message, data),
                code=code,
                data=data,
            )
        raise RPCError(message, code=code, data=data)


def _revert_reason(message: str, data: object) -> Optional[str]:
    if isinstance(data, dict):
        data = data.get("data")
    reason = decode_revert_reason(data) if isinstance(data, str) else None
    if reason is not None:
        return reason
    # geth style: "execution reverted: UniswapV2Router: EXPIRED"
    head, sep, tail = message.partition(":")
    if sep and head.strip().lower() == _REVERT_PREFIX and tail.strip():
        return tail.strip()
    return None


def _hex_to_int(value: str) -> int:
    if not isinstance(value, str):
        raise RPCError("Expected hex string result")
    return int(value, 16)


def _hex_to_bytes(value: str) -> bytes:
    if not isinstance(value, str):
        raise RPCError("Expected hex string result")
    return hex_to_bytes(value)
