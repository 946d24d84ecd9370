"""Async wallet provider and ENS resolver over the JSON-RPC client."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from web3 import Web3

from core.base_types import Address, TransactionRequest
from core.wallet_manager import WalletManager

from .client import ChainClient
from .errors import NameResolutionError
from .transaction_builder import TransactionBuilder

logger = logging.getLogger(__name__)


class WalletProvider(Protocol):
    """What the swap and permit pipelines need from a connected wallet."""

    chain_id: int

    @property
    def account(self) -> Optional[Address]: ...

    async def get_block_number(self) -> int: ...

    async def estimate_gas(self, tx: TransactionRequest) -> int: ...

    async def call(self, tx: TransactionRequest) -> bytes: ...

    async def send_transaction(self, tx: TransactionRequest) -> str: ...

    async def sign_typed_data(self, account: Address, payload: str) -> str: ...


class NameResolver(Protocol):
    async def resolve(self, name: str) -> Optional[Address]: ...


class RpcWalletProvider:
    """
    Wallet provider backed by ``ChainClient``.

    Signing uses the local ``WalletManager`` when one is configured, and
    falls back to the node's ``eth_signTypedData_v4`` for node-managed
    accounts. Blocking RPC work runs in a worker thread so the event loop
    stays free while several estimations are in flight.
    """

    def __init__(
        self,
        client: ChainClient,
        chain_id: int,
        wallet: Optional[WalletManager] = None,
        gas_priority: str = "medium",
    ):
        self.client = client
        self.chain_id = chain_id
        self._wallet = wallet
        self._gas_priority = gas_priority

    @property
    def account(self) -> Optional[Address]:
        if self._wallet is None:
            return None
        return Address.from_string(self._wallet.address)

    async def get_block_number(self) -> int:
        return await asyncio.to_thread(self.client.get_block_number)

    async def estimate_gas(self, tx: TransactionRequest) -> int:
        return await asyncio.to_thread(self.client.estimate_gas, tx)

    async def call(self, tx: TransactionRequest) -> bytes:
        return await asyncio.to_thread(self.client.call, tx)

    async def send_transaction(self, tx: TransactionRequest) -> str:
        if self._wallet is None:
            raise ValueError("no signing wallet configured")
        builder = (
            TransactionBuilder(self.client, self._wallet)
            .from_request(tx)
            .chain_id(self.chain_id)
        )

        def send() -> str:
            if tx.gas_limit is None:
                builder.with_gas_estimate()
            return builder.with_gas_price(self._gas_priority).send()

        return await asyncio.to_thread(send)

    async def sign_typed_data(self, account: Address, payload: str) -> str:
        if self._wallet is not None:
            if Address.from_string(self._wallet.address) != account:
                raise ValueError(f"account {account} is not managed by this wallet")
            signed = self._wallet.sign_typed_payload(payload)
            return "0x" + bytes(signed.signature).hex()
        return await asyncio.to_thread(
            self.client._rpc_call, "eth_signTypedData_v4", [account.checksum, payload]
        )


class EnsNameResolver:
    """Resolves ENS names with web3's ENS module."""

    def __init__(self, rpc_url: str):
        self._w3 = Web3(Web3.HTTPProvider(rpc_url))

    async def resolve(self, name: str) -> Optional[Address]:
        return await asyncio.to_thread(self._resolve_sync, name)

    def _resolve_sync(self, name: str) -> Optional[Address]:
        try:
            resolved = self._w3.ens.address(name)
        except Exception as exc:
            raise NameResolutionError(f"ENS lookup failed for {name}") from exc
        if resolved is None:
            logger.debug("ens name %s has no address record", name)
            return None
        return Address.from_string(resolved)
