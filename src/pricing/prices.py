"""Slippage bounds, LP fee and price impact breakdown for trades."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from enum import Enum
from fractions import Fraction
from typing import Optional

from core.base_types import ONE_HUNDRED_PERCENT, TokenAmount, bips_to_fraction

from .trade import Trade

# Price impact warning thresholds.
ALLOWED_PRICE_IMPACT_LOW = Fraction(100, 10_000)  # 1%
ALLOWED_PRICE_IMPACT_MEDIUM = Fraction(300, 10_000)  # 3%
ALLOWED_PRICE_IMPACT_HIGH = Fraction(500, 10_000)  # 5%
BLOCKED_PRICE_IMPACT_NON_EXPERT = Fraction(1_500, 10_000)  # 15%

_IMPACT_TIERS = (
    BLOCKED_PRICE_IMPACT_NON_EXPERT,
    ALLOWED_PRICE_IMPACT_HIGH,
    ALLOWED_PRICE_IMPACT_MEDIUM,
    ALLOWED_PRICE_IMPACT_LOW,
)


class Field(Enum):
    INPUT = "INPUT"
    OUTPUT = "OUTPUT"


@dataclass(frozen=True)
class PriceBreakdown:
    price_impact_without_fee: Optional[Fraction]
    realized_lp_fee: Optional[Fraction]
    realized_lp_fee_amount: Optional[TokenAmount]


def slippage_adjusted_amounts(
    trade: Optional[Trade], allowed_slippage_bips: int
) -> dict[Field, Optional[TokenAmount]]:
    """
    Maximum input and minimum output the user accepts for ``trade``.

    EXACT_INPUT: OUTPUT = output * (10000 - S) / 10000, truncated.
    EXACT_OUTPUT: INPUT = input * (10000 + S) / 10000, truncated.
    """
    if trade is None:
        return {Field.INPUT: None, Field.OUTPUT: None}
    tolerance = bips_to_fraction(allowed_slippage_bips)
    return {
        Field.INPUT: trade.maximum_amount_in(tolerance),
        Field.OUTPUT: trade.minimum_amount_out(tolerance),
    }


def compute_realized_lp_fee(trade: Trade) -> Fraction:
    """
    Share of the input paid to LPs.

    Per route the fee compounds hop by hop (1 - prod(1 - fee)); split trades
    weight each route by its share of the input.
    """
    total_in = trade.input_amount.raw
    fee = Fraction(0)
    for swap in trade.swaps:
        weight = Fraction(swap.input_amount.raw, total_in)
        fee += swap.route.fee_fraction * weight
    return fee


def compute_trade_price_breakdown(trade: Optional[Trade]) -> PriceBreakdown:
    if trade is None:
        return PriceBreakdown(None, None, None)

    realized_lp_fee = compute_realized_lp_fee(trade)
    # the x*y=k impact, with LP fees taken out
    price_impact_without_fee = trade.price_impact - realized_lp_fee
    realized_lp_fee_amount = trade.input_amount.multiply(realized_lp_fee)
    return PriceBreakdown(
        price_impact_without_fee=price_impact_without_fee,
        realized_lp_fee=realized_lp_fee,
        realized_lp_fee_amount=realized_lp_fee_amount,
    )


def warning_severity(price_impact: Optional[Fraction]) -> int:
    """0 (fine) .. 4 (blocked); unknown impact is treated as blocked."""
    if price_impact is None:
        return 4
    severity = 4
    for threshold in _IMPACT_TIERS:
        if price_impact < threshold:
            severity -= 1
        else:
            break
    return severity


def format_price_impact(price_impact: Optional[Fraction]) -> str:
    if price_impact is None:
        return "-"
    if price_impact < Fraction(1, 10_000):
        return "<0.01%"
    percent = Decimal(price_impact.numerator * 100) / Decimal(price_impact.denominator)
    return f"{percent.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}%"


def format_execution_price(trade: Optional[Trade], inverted: bool = False) -> str:
    if trade is None:
        return ""
    input_currency = trade.input_currency
    output_currency = trade.output_currency
    # raw ratio -> human ratio
    price = trade.execution_price * Fraction(10**input_currency.decimals, 10**output_currency.decimals)
    if inverted:
        return f"{_significant(ONE_HUNDRED_PERCENT / price)} {input_currency.symbol} / {output_currency.symbol}"
    return f"{_significant(price)} {output_currency.symbol} / {input_currency.symbol}"


def _significant(value: Fraction, digits: int = 6) -> str:
    with localcontext() as ctx:
        ctx.prec = digits
        ctx.rounding = ROUND_HALF_UP
        result = Decimal(value.numerator) / Decimal(value.denominator)
    return format(result.normalize(), "f")
