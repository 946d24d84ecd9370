"""Quote sources: one capability, two interchangeable backends."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from chain.abi import decode_uint, encode_call, encode_path
from chain.client import ChainClient
from chain.errors import CallReverted
from core.base_types import Address, TokenAmount, TransactionRequest

from .pools import InsufficientLiquidity
from .route import Route
from .trade import TradeType

logger = logging.getLogger(__name__)

QUOTER_ADDRESSES: dict[int, Address] = {
    chain_id: Address("0xb27308f9F90D607463bb33eA1BeBb41C27CE5AB6")
    for chain_id in (1, 3, 4, 5, 10, 42, 137, 42161)
}

QUOTE_GAS_OVERRIDES: dict[int, int] = {
    42161: 25_000_000,
    421611: 25_000_000,
    137: 40_000_000,
    80001: 40_000_000,
}

DEFAULT_GAS_QUOTE = 2_000_000


class QuoteSource(Protocol):
    """
    Quotes the other side of a swap along one route.

    For EXACT_INPUT ``amount`` is the input and the result is the output;
    for EXACT_OUTPUT it is the other way round. ``None`` means the route
    cannot fill the amount.
    """

    async def quote(
        self, route: Route, amount: TokenAmount, trade_type: TradeType
    ) -> Optional[TokenAmount]: ...


class PoolMathQuoter:
    """Client-side quotes computed from pool snapshots."""

    async def quote(
        self, route: Route, amount: TokenAmount, trade_type: TradeType
    ) -> Optional[TokenAmount]:
        try:
            if trade_type == TradeType.EXACT_INPUT:
                return route.get_output(amount)
            return route.get_input(amount)
        except InsufficientLiquidity as exc:
            logger.debug("route %s cannot fill %s: %s", route, amount, exc)
            return None


def quote_call_parameters(route: Route, amount: TokenAmount, trade_type: TradeType) -> bytes:
    """Calldata for the v3 quoter contract."""
    addresses = [token.address.checksum for token in route.path]
    fees = [pool.fee for pool in route.pools]
    if trade_type == TradeType.EXACT_INPUT:
        return encode_call(
            "quoteExactInput(bytes,uint256)",
            ["bytes", "uint256"],
            [encode_path(addresses, fees), amount.raw],
        )
    return encode_call(
        "quoteExactOutput(bytes,uint256)",
        ["bytes", "uint256"],
        [encode_path(addresses[::-1], fees[::-1]), amount.raw],
    )


class OnChainQuoter:
    """Quotes by simulating the route against the on-chain quoter contract."""

    def __init__(self, client: ChainClient, chain_id: int, quoter: Optional[Address] = None):
        quoter = quoter or QUOTER_ADDRESSES.get(chain_id)
        if quoter is None:
            raise ValueError(f"No quoter deployed on chain {chain_id}")
        self._client = client
        self._chain_id = chain_id
        self._quoter = quoter

    async def quote(
        self, route: Route, amount: TokenAmount, trade_type: TradeType
    ) -> Optional[TokenAmount]:
        if route.protocol != "v3":
            logger.debug("quoter only prices v3 routes, skipping %s", route)
            return None
        tx = TransactionRequest(
            to=self._quoter,
            data=quote_call_parameters(route, amount, trade_type),
            gas_limit=QUOTE_GAS_OVERRIDES.get(self._chain_id, DEFAULT_GAS_QUOTE),
            chain_id=self._chain_id,
        )
        try:
            raw = await asyncio.to_thread(self._client.call, tx)
        except CallReverted as exc:
            logger.debug("quoter reverted for %s: %s", route, exc.reason or exc)
            return None
        if len(raw) < 32:
            return None
        value = decode_uint(raw)
        if value == 0:
            return None
        currency = route.output if trade_type == TradeType.EXACT_INPUT else route.input
        return TokenAmount(currency, value)


def make_quote_source(backend: str, client: Optional[ChainClient] = None, chain_id: int = 1) -> QuoteSource:
    """Pick the quote backend named in settings (``local`` or ``quoter``)."""
    if backend == "local":
        return PoolMathQuoter()
    if backend == "quoter":
        if client is None:
            raise ValueError("the quoter backend needs a chain client")
        return OnChainQuoter(client, chain_id)
    raise ValueError(f"unknown quote backend {backend!r}")
