import pytest
from eth_abi import decode, encode

from chain.abi import function_selector
from chain.errors import CallReverted
from core.base_types import Address, Token, TokenAmount
from pricing.pools import Q96, ConcentratedLiquidityPool, ConstantProductPool
from pricing.quoter import (
    DEFAULT_GAS_QUOTE,
    QUOTE_GAS_OVERRIDES,
    OnChainQuoter,
    PoolMathQuoter,
    make_quote_source,
    quote_call_parameters,
)
from pricing.route import Route
from pricing.trade import TradeType

TKA = Token(1, Address("0x00000000000000000000000000000000000000aa"), 18, "TKA")
TKB = Token(1, Address("0x00000000000000000000000000000000000000bb"), 18, "TKB")
TKC = Token(1, Address("0x00000000000000000000000000000000000000cc"), 18, "TKC")


def _v3(token_a, token_b, fee=3_000):
    return ConcentratedLiquidityPool(token_a, token_b, fee, sqrt_price_x96=Q96, liquidity=10**24, tick=0)


V3_ROUTE = Route([_v3(TKA, TKC, 500), _v3(TKC, TKB, 3_000)], TKA, TKB)


class _FakeClient:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.requests = []

    def call(self, tx, block="latest"):
        self.requests.append(tx)
        if self.error is not None:
            raise self.error
        return self.result


def test_exact_input_calldata_encodes_forward_path():
    data = quote_call_parameters(V3_ROUTE, TokenAmount(TKA, 10**18), TradeType.EXACT_INPUT)
    assert data[:4] == function_selector("quoteExactInput(bytes,uint256)")
    path, amount = decode(["bytes", "uint256"], data[4:])
    assert amount == 10**18
    assert path[:20] == bytes.fromhex(TKA.address.checksum[2:])
    assert int.from_bytes(path[20:23], "big") == 500
    assert path[-20:] == bytes.fromhex(TKB.address.checksum[2:])


def test_exact_output_calldata_reverses_path():
    data = quote_call_parameters(V3_ROUTE, TokenAmount(TKB, 10**18), TradeType.EXACT_OUTPUT)
    assert data[:4] == function_selector("quoteExactOutput(bytes,uint256)")
    path, _ = decode(["bytes", "uint256"], data[4:])
    assert path[:20] == bytes.fromhex(TKB.address.checksum[2:])
    assert int.from_bytes(path[20:23], "big") == 3_000
    assert path[-20:] == bytes.fromhex(TKA.address.checksum[2:])


@pytest.mark.asyncio
async def test_on_chain_quoter_decodes_amount():
    client = _FakeClient(result=encode(["uint256"], [42]))
    quoter = OnChainQuoter(client, 1)

    quoted = await quoter.quote(V3_ROUTE, TokenAmount(TKA, 10**18), TradeType.EXACT_INPUT)

    assert quoted == TokenAmount(TKB, 42)
    assert client.requests[0].gas_limit == DEFAULT_GAS_QUOTE


@pytest.mark.asyncio
async def test_on_chain_quoter_uses_gas_override():
    client = _FakeClient(result=encode(["uint256"], [42]))
    await OnChainQuoter(client, 42161).quote(V3_ROUTE, TokenAmount(TKA, 1), TradeType.EXACT_INPUT)
    assert client.requests[0].gas_limit == QUOTE_GAS_OVERRIDES[42161]


@pytest.mark.asyncio
async def test_on_chain_quoter_returns_none_on_revert_or_zero():
    reverted = OnChainQuoter(_FakeClient(error=CallReverted("execution reverted", reason="SPL")), 1)
    assert await reverted.quote(V3_ROUTE, TokenAmount(TKA, 1), TradeType.EXACT_INPUT) is None

    zero = OnChainQuoter(_FakeClient(result=encode(["uint256"], [0])), 1)
    assert await zero.quote(V3_ROUTE, TokenAmount(TKA, 1), TradeType.EXACT_INPUT) is None


@pytest.mark.asyncio
async def test_on_chain_quoter_skips_v2_routes():
    client = _FakeClient(result=encode(["uint256"], [42]))
    v2_route = Route([ConstantProductPool(TKA, TKB, 10**21, 10**21)], TKA, TKB)
    assert await OnChainQuoter(client, 1).quote(v2_route, TokenAmount(TKA, 1), TradeType.EXACT_INPUT) is None
    assert client.requests == []


@pytest.mark.asyncio
async def test_pool_math_quoter_returns_none_without_liquidity():
    route = Route([ConstantProductPool(TKA, TKB, 10, 10)], TKA, TKB)
    quoter = PoolMathQuoter()
    assert await quoter.quote(route, TokenAmount(TKB, 10), TradeType.EXACT_OUTPUT) is None
    assert await quoter.quote(route, TokenAmount(TKA, 5), TradeType.EXACT_INPUT) is not None


def test_make_quote_source():
    assert isinstance(make_quote_source("local"), PoolMathQuoter)
    assert isinstance(make_quote_source("quoter", _FakeClient(), 1), OnChainQuoter)
    with pytest.raises(ValueError, match="chain client"):
        make_quote_source("quoter")
    with pytest.raises(ValueError, match="unknown"):
        make_quote_source("polywrap")
    with pytest.raises(ValueError, match="No quoter"):
        OnChainQuoter(_FakeClient(), 999)
