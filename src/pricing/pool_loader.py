"""Discovers candidate pools for a currency pair and reads their state."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from eth_abi import decode
from eth_abi import encode as abi_encode
from eth_abi.packed import encode_packed
from eth_utils.crypto import keccak

from chain.abi import function_selector
from chain.client import ChainClient
from core.base_types import Address, Currency, Token, TransactionRequest
from core.tokens import bases_for_chain

from .pools import ConcentratedLiquidityPool, ConstantProductPool, Pool, is_fresh
from .route import Route, RouteFinder

logger = logging.getLogger(__name__)

V2_FACTORY = Address("0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f")
V2_INIT_CODE_HASH = bytes.fromhex(
    "96e8ac4277198ff8b6f785478aa9a39f403cb768dd02cbee326c3e7da348845f"
)
V3_FACTORY = Address("0x1F98431c8aD98523631AE4a59f8bCb2d67D8E1d7")
V3_INIT_CODE_HASH = bytes.fromhex(
    "e34f199b19b2b4f47f68442619d555527d244f78a3297ea89325f843f87b8b54"
)
V3_FEE_TIERS = (100, 500, 3_000, 10_000)


def candidate_token_pairs(
    token_a: Token, token_b: Token, bases: list[Token]
) -> list[tuple[Token, Token]]:
    """
    Direct pair, each base against each side, and base/base pairs.

    Order is stable and duplicates (in either orientation) are dropped.
    """
    raw_pairs: list[tuple[Token, Token]] = [(token_a, token_b)]
    raw_pairs += [(token_a, base) for base in bases]
    raw_pairs += [(token_b, base) for base in bases]
    raw_pairs += [(base, other) for idx, base in enumerate(bases) for other in bases[idx + 1 :]]

    seen: set[frozenset[Token]] = set()
    pairs: list[tuple[Token, Token]] = []
    for first, second in raw_pairs:
        if first == second:
            continue
        key = frozenset((first, second))
        if key in seen:
            continue
        seen.add(key)
        pairs.append((first, second))
    return pairs


def _sorted(token_a: Token, token_b: Token) -> tuple[Token, Token]:
    return (token_a, token_b) if token_a.sorts_before(token_b) else (token_b, token_a)


def _create2_address(factory: Address, salt: bytes, init_code_hash: bytes) -> Address:
    digest = keccak(b"\xff" + bytes.fromhex(factory.checksum[2:]) + salt + init_code_hash)
    return Address("0x" + digest[12:].hex())


def compute_v2_pair_address(token_a: Token, token_b: Token, factory: Address = V2_FACTORY) -> Address:
    token0, token1 = _sorted(token_a, token_b)
    salt = keccak(encode_packed(["address", "address"], [token0.address.checksum, token1.address.checksum]))
    return _create2_address(factory, salt, V2_INIT_CODE_HASH)


def compute_v3_pool_address(
    token_a: Token, token_b: Token, fee: int, factory: Address = V3_FACTORY
) -> Address:
    token0, token1 = _sorted(token_a, token_b)
    salt = keccak(
        abi_encode(["address", "address", "uint24"], [token0.address.checksum, token1.address.checksum, fee])
    )
    return _create2_address(factory, salt, V3_INIT_CODE_HASH)


@dataclass(frozen=True)
class PoolSnapshot:
    pools: list[Pool]
    block_number: int


class PoolLoader:
    """
    Reads v2 pair reserves and v3 slot0/liquidity for every candidate pair.

    All reads of one snapshot are pinned to the same block.
    """

    def __init__(
        self,
        client: ChainClient,
        chain_id: int,
        include_v2: bool = True,
        include_v3: bool = True,
        fee_tiers: tuple[int, ...] = V3_FEE_TIERS,
    ):
        self._client = client
        self._chain_id = chain_id
        self._include_v2 = include_v2
        self._include_v3 = include_v3
        self._fee_tiers = fee_tiers

    def load(self, currency_a: Currency, currency_b: Currency) -> PoolSnapshot:
        token_a, token_b = currency_a.wrapped, currency_b.wrapped
        pairs = candidate_token_pairs(token_a, token_b, bases_for_chain(self._chain_id))
        block_number = self._client.get_block_number()
        block = hex(block_number)

        pools: list[Pool] = []
        if self._include_v2:
            pools += self._load_v2(pairs, block, block_number)
        if self._include_v3:
            pools += self._load_v3(pairs, block, block_number)
        logger.info(
            "loaded %d pools for %s/%s at block %d", len(pools), token_a, token_b, block_number
        )
        return PoolSnapshot(pools=pools, block_number=block_number)

    async def load_async(self, currency_a: Currency, currency_b: Currency) -> PoolSnapshot:
        return await asyncio.to_thread(self.load, currency_a, currency_b)

    def _call(self, address: Address, signature: str) -> TransactionRequest:
        return TransactionRequest(
            to=address, data=function_selector(signature), chain_id=self._chain_id
        )

    def _load_v2(
        self, pairs: list[tuple[Token, Token]], block: str, block_number: int
    ) -> list[Pool]:
        addresses = [compute_v2_pair_address(a, b) for a, b in pairs]
        results = self._client.call_many(
            [self._call(address, "getReserves()") for address in addresses], block
        )
        pools: list[Pool] = []
        for (token_a, token_b), address, raw in zip(pairs, addresses, results):
            if not raw or len(raw) < 96:
                continue
            reserve0, reserve1, _ = decode(["uint112", "uint112", "uint32"], raw)
            if reserve0 == 0 or reserve1 == 0:
                continue
            token0, token1 = _sorted(token_a, token_b)
            pools.append(
                ConstantProductPool(
                    token0,
                    token1,
                    int(reserve0),
                    int(reserve1),
                    address=address,
                    block_number=block_number,
                )
            )
        return pools

    def _load_v3(
        self, pairs: list[tuple[Token, Token]], block: str, block_number: int
    ) -> list[Pool]:
        keys = [(a, b, fee) for a, b in pairs for fee in self._fee_tiers]
        addresses = [compute_v3_pool_address(a, b, fee) for a, b, fee in keys]
        calls: list[TransactionRequest] = []
        for address in addresses:
            calls.append(self._call(address, "slot0()"))
            calls.append(self._call(address, "liquidity()"))
        results = self._client.call_many(calls, block)

        pools: list[Pool] = []
        for idx, ((token_a, token_b, fee), address) in enumerate(zip(keys, addresses)):
            slot0_raw, liquidity_raw = results[2 * idx], results[2 * idx + 1]
            if not slot0_raw or not liquidity_raw or len(slot0_raw) < 64:
                continue
            sqrt_price_x96, tick = decode(["uint160", "int24"], slot0_raw[:64])
            (liquidity,) = decode(["uint128"], liquidity_raw[:32])
            if sqrt_price_x96 == 0 or liquidity == 0:
                continue
            pools.append(
                ConcentratedLiquidityPool(
                    token_a,
                    token_b,
                    fee,
                    sqrt_price_x96=int(sqrt_price_x96),
                    liquidity=int(liquidity),
                    tick=int(tick),
                    address=address,
                    block_number=block_number,
                )
            )
        return pools


class OnChainRoutes:
    """
    Route discovery over live pool state.

    The last snapshot is reused only while it is within ``max_block_age``
    of the latest block and for the same pair; otherwise pools are re-read.
    """

    def __init__(self, loader: PoolLoader, client: ChainClient, max_hops: int = 2, max_block_age: int = 10):
        self._loader = loader
        self._client = client
        self._max_hops = max_hops
        self._max_block_age = max_block_age
        self._cached: Optional[tuple[frozenset, PoolSnapshot]] = None

    async def routes(self, currency_in: Optional[Currency], currency_out: Optional[Currency]) -> list[Route]:
        if currency_in is None or currency_out is None:
            return []
        snapshot = await self._snapshot(currency_in, currency_out)
        return RouteFinder(snapshot.pools).find_all_routes(currency_in, currency_out, self._max_hops)

    async def _snapshot(self, currency_in: Currency, currency_out: Currency) -> PoolSnapshot:
        key = frozenset((currency_in.wrapped, currency_out.wrapped))
        if self._cached is not None and self._cached[0] == key:
            latest = await asyncio.to_thread(self._client.get_block_number)
            if is_fresh(self._cached[1].block_number, latest, self._max_block_age):
                return self._cached[1]
            logger.debug("pool snapshot at block %d is stale", self._cached[1].block_number)
        snapshot = await self._loader.load_async(currency_in, currency_out)
        self._cached = (key, snapshot)
        return snapshot
