from fractions import Fraction

import pytest

from core.base_types import Address, Token, TokenAmount
from pricing.pools import ConstantProductPool
from pricing.route import Route
from pricing.trade import Swap, Trade, TradesNotComparable, TradeType, is_trade_better

TKA = Token(1, Address("0x00000000000000000000000000000000000000aa"), 18, "TKA")
TKB = Token(1, Address("0x00000000000000000000000000000000000000bb"), 18, "TKB")
TKC = Token(1, Address("0x00000000000000000000000000000000000000cc"), 18, "TKC")
DEPTH = 10**24

AB = Route([ConstantProductPool(TKA, TKB, DEPTH, DEPTH)], TKA, TKB)


def _trade(amount_in, amount_out, trade_type=TradeType.EXACT_INPUT, route=AB):
    return Trade.create_unchecked(
        route,
        TokenAmount(route.input, amount_in),
        TokenAmount(route.output, amount_out),
        trade_type,
    )


def test_from_route_exact_input_walks_pools():
    trade = Trade.from_route(AB, TokenAmount(TKA, 10**18), TradeType.EXACT_INPUT)
    assert trade.input_amount.raw == 10**18
    assert trade.output_amount == AB.get_output(TokenAmount(TKA, 10**18))
    assert trade.route is AB


def test_from_route_exact_output_walks_backwards():
    trade = Trade.from_route(AB, TokenAmount(TKB, 10**18), TradeType.EXACT_OUTPUT)
    assert trade.output_amount.raw == 10**18
    assert trade.input_amount.raw > 10**18


def test_from_route_rejects_wrong_currency():
    with pytest.raises(ValueError, match="route input"):
        Trade.from_route(AB, TokenAmount(TKB, 1), TradeType.EXACT_INPUT)


def test_trade_sums_split_routes():
    other = Route(
        [ConstantProductPool(TKA, TKC, DEPTH, DEPTH), ConstantProductPool(TKC, TKB, DEPTH, DEPTH)],
        TKA,
        TKB,
    )
    trade = Trade(
        [
            Swap(AB, TokenAmount(TKA, 60), TokenAmount(TKB, 59)),
            Swap(other, TokenAmount(TKA, 40), TokenAmount(TKB, 39)),
        ],
        TradeType.EXACT_INPUT,
    )
    assert trade.input_amount.raw == 100
    assert trade.output_amount.raw == 98
    assert trade.routes == [AB, other]
    with pytest.raises(ValueError, match="split"):
        _ = trade.route


def test_execution_price_and_price_impact():
    trade = _trade(100, 95)
    assert trade.execution_price == Fraction(95, 100)
    assert trade.price_impact == Fraction(5, 100)


def test_slippage_bounds():
    exact_in = _trade(1_000, 1_000_003)
    assert exact_in.minimum_amount_out(Fraction(50, 10_000)).raw == 995_002
    assert exact_in.maximum_amount_in(Fraction(50, 10_000)).raw == 1_000

    exact_out = _trade(1_000_003, 1_000, TradeType.EXACT_OUTPUT)
    assert exact_out.maximum_amount_in(Fraction(50, 10_000)).raw == 1_005_003
    assert exact_out.minimum_amount_out(Fraction(50, 10_000)).raw == 1_000

    with pytest.raises(ValueError):
        exact_in.minimum_amount_out(Fraction(-1, 100))


def test_is_trade_better_presence_beats_absence():
    trade = _trade(100, 200)
    assert is_trade_better(None, trade) is True
    assert is_trade_better(trade, None) is False
    assert is_trade_better(None, None) is None


def test_is_trade_better_is_irreflexive_for_equal_prices():
    assert is_trade_better(_trade(100, 200), _trade(100, 200)) is False
    assert is_trade_better(_trade(100, 200), _trade(50, 100)) is False


def test_is_trade_better_compares_execution_price():
    worse, better = _trade(100, 200), _trade(100, 210)
    assert is_trade_better(worse, better) is True
    assert is_trade_better(better, worse) is False


def test_is_trade_better_applies_minimum_delta():
    base, slightly_better = _trade(100, 200), _trade(100, 210)
    assert is_trade_better(base, slightly_better, Fraction(1, 100)) is True
    assert is_trade_better(base, slightly_better, Fraction(10, 100)) is False


def test_is_trade_better_rejects_mismatched_type():
    with pytest.raises(TradesNotComparable):
        is_trade_better(_trade(100, 200), _trade(100, 200, TradeType.EXACT_OUTPUT))


def test_is_trade_better_rejects_mismatched_currencies():
    ac = Route([ConstantProductPool(TKA, TKC, DEPTH, DEPTH)], TKA, TKC)
    with pytest.raises(TradesNotComparable):
        is_trade_better(_trade(100, 200), _trade(100, 200, route=ac))
