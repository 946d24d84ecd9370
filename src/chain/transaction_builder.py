"""Fluent builder that prices, signs and sends a prepared transaction."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from eth_account.datastructures import SignedTransaction

from core.base_types import BIPS_BASE, Address, TransactionRequest
from core.wallet_manager import WalletManager

from .client import ChainClient

_UNSET = Address("0x0000000000000000000000000000000000000000")


class TransactionBuilder:
    """
    Turns a call from the swap pipeline into a signed EIP-1559 transaction.

    Usage:
        tx_hash = (TransactionBuilder(client, wallet)
            .from_request(swap_request)
            .with_gas_price("medium")
            .send())

    The nonce is fetched for the wallet's address on build unless the
    request already carries one.
    """

    def __init__(self, client: ChainClient, wallet: WalletManager):
        self._client = client
        self._wallet = wallet
        self._request = TransactionRequest(to=_UNSET, data=b"")
        self._has_target = False

    @property
    def sender(self) -> Address:
        return Address.from_string(self._wallet.address)

    def from_request(self, request: TransactionRequest) -> "TransactionBuilder":
        """Start from an already encoded call; fee fields are re-priced."""
        if request.value < 0:
            raise ValueError("value must be non-negative")
        self._request = replace(request, sender=None, max_fee_per_gas=None, max_priority_fee=None)
        self._has_target = True
        return self

    def gas_limit(self, limit: int) -> "TransactionBuilder":
        if limit <= 0:
            raise ValueError("gas_limit must be positive")
        self._request = replace(self._request, gas_limit=limit)
        return self

    def chain_id(self, chain_id: int) -> "TransactionBuilder":
        if chain_id <= 0:
            raise ValueError("chain_id must be positive")
        self._request = replace(self._request, chain_id=chain_id)
        return self

    def with_gas_estimate(self, margin_bips: int = 1_000) -> "TransactionBuilder":
        """Estimate gas from the wallet's address and add ``margin_bips`` on top."""
        if margin_bips < 0:
            raise ValueError("margin_bips must be non-negative")
        self._require_target()
        estimate = self._client.estimate_gas(
            replace(self._request, sender=self.sender, gas_limit=None)
        )
        return self.gas_limit(estimate * (BIPS_BASE + margin_bips) // BIPS_BASE)

    def with_gas_price(self, priority: str = "medium") -> "TransactionBuilder":
        """Price the transaction from the latest base fee and suggested tip."""
        gas = self._client.get_gas_price()
        self._request = replace(
            self._request,
            max_priority_fee=gas.priority_fee(priority),
            max_fee_per_gas=gas.max_fee(priority),
        )
        return self

    def build(self) -> TransactionRequest:
        """Validate and return the fully priced request."""
        self._require_target()
        request = self._request
        if request.gas_limit is None:
            raise ValueError("gas_limit is required (call with_gas_estimate)")
        if request.max_fee_per_gas is None or request.max_priority_fee is None:
            raise ValueError("max_fee_per_gas is required (call with_gas_price)")
        nonce: Optional[int] = request.nonce
        if nonce is None:
            nonce = self._client.get_nonce(self.sender)
        self._request = replace(request, nonce=nonce)
        return self._request

    def build_and_sign(self) -> SignedTransaction:
        return self._wallet.sign_transaction(self.build().to_dict())

    def send(self) -> str:
        """Build, sign and broadcast; returns the transaction hash."""
        signed = self.build_and_sign()
        return self._client.send_transaction(signed.raw_transaction)

    def _require_target(self) -> None:
        if not self._has_target:
            raise ValueError("to address is required")
