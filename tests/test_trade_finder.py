import asyncio
from decimal import Decimal
from fractions import Fraction

import pytest

from chain.errors import ChainError
from core.base_types import Address, Token, TokenAmount
from pricing.pools import ConstantProductPool
from pricing.quoter import PoolMathQuoter
from pricing.route import Route
from pricing.routing_api import QuoteError, QuoteResponse
from pricing.trade import TradeType
from pricing.trade_finder import (
    ClientSideTradeFinder,
    RoutingApiTradeFinder,
    StaticRoutes,
    TradeState,
    _TradeFinder,
)

TKA = Token(1, Address("0x00000000000000000000000000000000000000aa"), 18, "TKA")
TKB = Token(1, Address("0x00000000000000000000000000000000000000bb"), 18, "TKB")
TKC = Token(1, Address("0x00000000000000000000000000000000000000cc"), 18, "TKC")
TKD = Token(1, Address("0x00000000000000000000000000000000000000dd"), 18, "TKD")
DEPTH = 10**24
ONE = 10**18


def _two_hop_pools():
    return [ConstantProductPool(TKA, TKC, DEPTH, DEPTH), ConstantProductPool(TKC, TKB, DEPTH, DEPTH)]


@pytest.mark.asyncio
async def test_two_hop_trade_pays_compounded_fee_and_impact():
    finder = ClientSideTradeFinder(StaticRoutes(_two_hop_pools()), PoolMathQuoter())
    amount_in = TokenAmount(TKA, 1_000 * ONE)

    result = await finder.find(TradeType.EXACT_INPUT, amount_in, TKB)

    assert result.state == TradeState.VALID
    trade = result.trade
    route = trade.route
    naive_output = route.mid_price * amount_in.raw
    assert trade.output_amount.raw < naive_output * (1 - route.fee_fraction)
    assert trade.output_amount.raw > 0


@pytest.mark.asyncio
async def test_no_route_found_when_pair_is_not_connected():
    pools = [ConstantProductPool(TKA, TKC, DEPTH, DEPTH), ConstantProductPool(TKB, TKD, DEPTH, DEPTH)]
    finder = ClientSideTradeFinder(StaticRoutes(pools), PoolMathQuoter())

    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)

    assert result.state == TradeState.NO_ROUTE_FOUND
    assert result.trade is None


@pytest.mark.asyncio
async def test_invalid_for_missing_or_identical_currencies():
    finder = ClientSideTradeFinder(StaticRoutes(_two_hop_pools()), PoolMathQuoter())

    missing = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), None)
    same = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKA)
    no_amount = await finder.find(TradeType.EXACT_INPUT, None, TKB)

    assert missing.state == TradeState.INVALID
    assert same.state == TradeState.INVALID
    assert no_amount.state == TradeState.INVALID


@pytest.mark.asyncio
async def test_best_route_wins_for_exact_input():
    shallow = ConstantProductPool(TKA, TKB, 10**20, 10**20)
    deep_pools = _two_hop_pools()
    finder = ClientSideTradeFinder(StaticRoutes([shallow] + deep_pools), PoolMathQuoter())

    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, 100 * ONE), TKB)

    assert result.trade.route.path == [TKA, TKC, TKB]


@pytest.mark.asyncio
async def test_best_route_wins_for_exact_output():
    shallow = ConstantProductPool(TKA, TKB, 10**20, 10**20)
    finder = ClientSideTradeFinder(StaticRoutes([shallow] + _two_hop_pools()), PoolMathQuoter())

    result = await finder.find(TradeType.EXACT_OUTPUT, TokenAmount(TKB, 50 * ONE), TKA)

    trade = result.trade
    assert result.state == TradeState.VALID
    assert trade.route.path == [TKA, TKC, TKB]
    assert trade.output_amount.raw == 50 * ONE
    assert trade.input_amount.currency == TKA


@pytest.mark.asyncio
async def test_ties_keep_first_route():
    first = ConstantProductPool(TKA, TKB, DEPTH, DEPTH, address=Address("0x" + "1" * 40))
    second = ConstantProductPool(TKA, TKB, DEPTH, DEPTH, address=Address("0x" + "2" * 40))
    finder = ClientSideTradeFinder(StaticRoutes([first, second]), PoolMathQuoter())

    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)

    assert result.trade.route.pools[0] is first


class _FailingQuoter:
    async def quote(self, route, amount, trade_type):
        raise ChainError("RPC request failed")


@pytest.mark.asyncio
async def test_quote_errors_mean_no_route():
    finder = ClientSideTradeFinder(StaticRoutes(_two_hop_pools()), _FailingQuoter())
    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)
    assert result.state == TradeState.NO_ROUTE_FOUND


class _FixedRoutes:
    def __init__(self, routes):
        self._routes = routes

    async def routes(self, currency_in, currency_out):
        return self._routes


class _ConstantQuoter:
    async def quote(self, route, amount, trade_type):
        return TokenAmount(TKA, 5)


@pytest.mark.asyncio
async def test_result_dropped_when_route_endpoints_no_longer_match():
    reversed_route = Route([ConstantProductPool(TKA, TKB, DEPTH, DEPTH)], TKB, TKA)
    finder = ClientSideTradeFinder(_FixedRoutes([reversed_route]), _ConstantQuoter())

    assert await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB) is None


class _SlowSmallAmounts(PoolMathQuoter):
    async def quote(self, route, amount, trade_type):
        if amount.raw < ONE:
            await asyncio.sleep(10)
        return await super().quote(route, amount, trade_type)


@pytest.mark.asyncio
async def test_update_is_last_input_wins():
    finder = ClientSideTradeFinder(StaticRoutes(_two_hop_pools()), _SlowSmallAmounts())
    assert finder.current.state == TradeState.LOADING

    stale = asyncio.create_task(finder.update(TradeType.EXACT_INPUT, TokenAmount(TKA, 1), TKB))
    await asyncio.sleep(0)
    fresh = await finder.update(TradeType.EXACT_INPUT, TokenAmount(TKA, 2 * ONE), TKB)

    assert await stale is None
    assert fresh.state == TradeState.VALID
    assert finder.current is fresh
    assert finder.current.trade.input_amount.raw == 2 * ONE


class _FakeRoutingClient:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get_quote(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response


def _api_response(block_number, amount_in=ONE, amount_out=ONE // 2):
    hop = {
        "type": "v2-pool",
        "tokenIn": {"chainId": 1, "address": TKA.address.checksum, "decimals": 18, "symbol": "TKA"},
        "tokenOut": {"chainId": 1, "address": TKB.address.checksum, "decimals": 18, "symbol": "TKB"},
        "reserve0": {
            "token": {"chainId": 1, "address": TKA.address.checksum, "decimals": 18},
            "quotient": str(DEPTH),
        },
        "reserve1": {
            "token": {"chainId": 1, "address": TKB.address.checksum, "decimals": 18},
            "quotient": str(DEPTH),
        },
        "amountIn": str(amount_in),
        "amountOut": str(amount_out),
    }
    return QuoteResponse.from_json(
        {
            "quote": str(amount_out),
            "blockNumber": str(block_number),
            "gasUseEstimateUSD": "1.5",
            "route": [[hop]],
        }
    )


def _latest(block):
    async def latest_block():
        return block

    return latest_block


@pytest.mark.asyncio
async def test_routing_api_trade_is_valid():
    client = _FakeRoutingClient(_api_response(100))
    finder = RoutingApiTradeFinder(client, _latest(105))

    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)

    assert result.state == TradeState.VALID
    assert result.gas_use_estimate_usd == Decimal("1.5")
    assert result.trade.execution_price == Fraction(1, 2)
    assert client.requests[0].token_out == TKB


@pytest.mark.asyncio
async def test_routing_api_drops_stale_quotes():
    finder = RoutingApiTradeFinder(_FakeRoutingClient(_api_response(100)), _latest(111))
    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)
    assert result.state == TradeState.NO_ROUTE_FOUND


@pytest.mark.asyncio
async def test_routing_api_errors_mean_no_route():
    finder = RoutingApiTradeFinder(_FakeRoutingClient(error=QuoteError("503")), _latest(1))
    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)
    assert result.state == TradeState.NO_ROUTE_FOUND


@pytest.mark.asyncio
async def test_routing_api_skips_identical_and_missing_currencies():
    client = _FakeRoutingClient(_api_response(1))
    finder = RoutingApiTradeFinder(client, _latest(1))

    same = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKA)
    missing = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), None)

    assert same.state == TradeState.NO_ROUTE_FOUND
    assert missing.state == TradeState.INVALID
    assert client.requests == []


@pytest.mark.asyncio
async def test_routing_api_unbuildable_trade_is_invalid():
    response = _api_response(1, amount_out=0)
    finder = RoutingApiTradeFinder(_FakeRoutingClient(response), _latest(1))

    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)

    assert result.state == TradeState.INVALID
    assert result.gas_use_estimate_usd == Decimal("1.5")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "trade_type, amount, other",
    [
        (TradeType.EXACT_INPUT, TokenAmount(TKA, 0), TKB),
        (TradeType.EXACT_OUTPUT, TokenAmount(TKB, 0), TKA),
    ],
)
async def test_zero_amount_is_invalid(trade_type, amount, other):
    client = _FakeRoutingClient(_api_response(1))
    client_side = ClientSideTradeFinder(StaticRoutes(_two_hop_pools()), PoolMathQuoter())
    routing_api = RoutingApiTradeFinder(client, _latest(1))

    assert (await client_side.find(trade_type, amount, other)).state == TradeState.INVALID
    assert (await routing_api.find(trade_type, amount, other)).state == TradeState.INVALID
    assert client.requests == []


class _FailingRoutes:
    async def routes(self, currency_in, currency_out):
        raise ChainError("RPC request failed")


@pytest.mark.asyncio
async def test_route_loading_errors_mean_no_route():
    finder = ClientSideTradeFinder(_FailingRoutes(), PoolMathQuoter())

    result = await finder.update(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)

    assert result.state == TradeState.NO_ROUTE_FOUND
    assert finder.current is result


@pytest.mark.asyncio
async def test_routing_api_block_errors_mean_no_route():
    async def latest_block():
        raise ChainError("RPC request failed")

    finder = RoutingApiTradeFinder(_FakeRoutingClient(_api_response(1)), latest_block)

    result = await finder.find(TradeType.EXACT_INPUT, TokenAmount(TKA, ONE), TKB)

    assert result.state == TradeState.NO_ROUTE_FOUND


def test_trade_finder_base_is_abstract():
    with pytest.raises(TypeError):
        _TradeFinder("base")
