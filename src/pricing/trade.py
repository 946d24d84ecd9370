from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Optional

from core.base_types import ONE_HUNDRED_PERCENT, ZERO_PERCENT, Currency, TokenAmount

from .route import Route


class TradeType(Enum):
    EXACT_INPUT = 0
    EXACT_OUTPUT = 1


class TradesNotComparable(ValueError):
    """Two trades differ in type or currencies and cannot be ranked."""


@dataclass(frozen=True)
class Swap:
    route: Route
    input_amount: TokenAmount
    output_amount: TokenAmount


class Trade:
    """
    Priced, directional swap proposal over one or more routes.

    For EXACT_INPUT the output amount is the quoted estimate; for
    EXACT_OUTPUT the input amount is. Instances are never mutated: a new
    quote produces a new Trade.
    """

    def __init__(
        self,
        swaps: list[Swap],
        trade_type: TradeType,
        gas_use_estimate_usd: Optional[Decimal] = None,
    ):
        if not swaps:
            raise ValueError("trade needs at least one swap")
        input_currency = swaps[0].route.input
        output_currency = swaps[0].route.output
        for swap in swaps:
            if swap.route.input != input_currency or swap.route.output != output_currency:
                raise ValueError("all routes must share input and output currencies")
            if swap.input_amount.currency != input_currency:
                raise ValueError("input amount currency does not match route input")
            if swap.output_amount.currency != output_currency:
                raise ValueError("output amount currency does not match route output")
            if swap.input_amount.raw <= 0 or swap.output_amount.raw <= 0:
                raise ValueError("swap amounts must be positive")

        self.swaps = tuple(swaps)
        self.trade_type = trade_type
        self.gas_use_estimate_usd = gas_use_estimate_usd
        self.input_amount = TokenAmount(
            input_currency, sum(swap.input_amount.raw for swap in swaps)
        )
        self.output_amount = TokenAmount(
            output_currency, sum(swap.output_amount.raw for swap in swaps)
        )

    @classmethod
    def from_route(cls, route: Route, amount: TokenAmount, trade_type: TradeType) -> "Trade":
        """Price a trade locally by walking the route's pools."""
        if trade_type == TradeType.EXACT_INPUT:
            if amount.currency != route.input:
                raise ValueError("amount currency must be the route input")
            swap = Swap(route, amount, route.get_output(amount))
        else:
            if amount.currency != route.output:
                raise ValueError("amount currency must be the route output")
            swap = Swap(route, route.get_input(amount), amount)
        return cls([swap], trade_type)

    @classmethod
    def create_unchecked(
        cls,
        route: Route,
        input_amount: TokenAmount,
        output_amount: TokenAmount,
        trade_type: TradeType,
        gas_use_estimate_usd: Optional[Decimal] = None,
    ) -> "Trade":
        """Build from amounts quoted elsewhere (quoter contract or routing API)."""
        return cls([Swap(route, input_amount, output_amount)], trade_type, gas_use_estimate_usd)

    @property
    def route(self) -> Route:
        if len(self.swaps) != 1:
            raise ValueError("trade is split across several routes")
        return self.swaps[0].route

    @property
    def routes(self) -> list[Route]:
        return [swap.route for swap in self.swaps]

    @property
    def input_currency(self) -> Currency:
        return self.input_amount.currency

    @property
    def output_currency(self) -> Currency:
        return self.output_amount.currency

    @property
    def execution_price(self) -> Fraction:
        """Raw output units per raw input unit."""
        return Fraction(self.output_amount.raw, self.input_amount.raw)

    @property
    def price_impact(self) -> Fraction:
        """
        Shortfall of the output versus the mid-price quote of every route,
        fees included.
        """
        spot_output = Fraction(0)
        for swap in self.swaps:
            spot_output += swap.route.mid_price * swap.input_amount.raw
        if spot_output == 0:
            return ZERO_PERCENT
        return (spot_output - self.output_amount.raw) / spot_output

    def minimum_amount_out(self, slippage_tolerance: Fraction) -> TokenAmount:
        _check_slippage(slippage_tolerance)
        if self.trade_type == TradeType.EXACT_OUTPUT:
            return self.output_amount
        return self.output_amount.multiply(ONE_HUNDRED_PERCENT - slippage_tolerance)

    def maximum_amount_in(self, slippage_tolerance: Fraction) -> TokenAmount:
        _check_slippage(slippage_tolerance)
        if self.trade_type == TradeType.EXACT_INPUT:
            return self.input_amount
        return self.input_amount.multiply(ONE_HUNDRED_PERCENT + slippage_tolerance)

    def __repr__(self) -> str:
        return (
            f"Trade({self.trade_type.name}, {self.input_amount} -> {self.output_amount}, "
            f"routes={len(self.swaps)})"
        )


def _check_slippage(slippage_tolerance: Fraction) -> None:
    if isinstance(slippage_tolerance, float):
        raise TypeError("slippage_tolerance must be a Fraction, not float")
    if slippage_tolerance < 0:
        raise ValueError("slippage_tolerance must be non-negative")


def is_trade_better(
    trade_a: Optional[Trade],
    trade_b: Optional[Trade],
    minimum_delta: Fraction = ZERO_PERCENT,
) -> Optional[bool]:
    """
    Whether ``trade_b`` improves on ``trade_a`` by more than ``minimum_delta``.

    A trade that exists beats one that does not; with neither present the
    answer is unknown (None). Trades of different type or currencies raise
    ``TradesNotComparable``.
    """
    if trade_a is not None and trade_b is None:
        return False
    if trade_b is not None and trade_a is None:
        return True
    if trade_a is None or trade_b is None:
        return None

    if (
        trade_a.trade_type != trade_b.trade_type
        or trade_a.input_currency != trade_b.input_currency
        or trade_a.output_currency != trade_b.output_currency
    ):
        raise TradesNotComparable("Trades are not comparable")

    if minimum_delta == ZERO_PERCENT:
        return trade_a.execution_price < trade_b.execution_price
    return trade_a.execution_price * (ONE_HUNDRED_PERCENT + minimum_delta) < trade_b.execution_price
