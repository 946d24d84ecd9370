from __future__ import annotations

from abc import ABC, abstractmethod
from fractions import Fraction
from typing import Optional

from core.base_types import Address, Token, TokenAmount

# Pool fees are in hundredths of a bip: 3000 == 0.30%.
FEE_DENOMINATOR = 1_000_000
Q96 = 2**96


class InsufficientLiquidity(ValueError):
    """The pool cannot fill the requested amount."""


def is_fresh(block_number: Optional[int], latest_block: Optional[int], max_block_age: int) -> bool:
    """Data read at ``block_number`` is usable while ``latest_block`` is close enough."""
    if block_number is None or latest_block is None:
        return False
    return latest_block - block_number <= max_block_age


class Pool(ABC):
    """
    Read-only snapshot of a liquidity pool.

    Tokens are kept in canonical order (token0 has the lower address).
    All swap math uses integers only, rounding the way the contracts do.
    """

    protocol = "base"

    def __init__(
        self,
        token_a: Token,
        token_b: Token,
        fee: int,
        address: Optional[Address] = None,
        block_number: Optional[int] = None,
    ):
        if not isinstance(fee, int):
            raise TypeError("fee must be int")
        if fee < 0 or fee >= FEE_DENOMINATOR:
            raise ValueError(f"fee must be in [0, {FEE_DENOMINATOR})")
        if token_a.sorts_before(token_b):
            self.token0, self.token1 = token_a, token_b
        else:
            self.token0, self.token1 = token_b, token_a
        self.fee = fee
        self.address = address
        self.block_number = block_number

    @property
    def chain_id(self) -> int:
        return self.token0.chain_id

    @property
    def fee_fraction(self) -> Fraction:
        return Fraction(self.fee, FEE_DENOMINATOR)

    def involves(self, token: Token) -> bool:
        return token == self.token0 or token == self.token1

    def other(self, token: Token) -> Token:
        if token == self.token0:
            return self.token1
        if token == self.token1:
            return self.token0
        raise ValueError("token not in pool")

    @abstractmethod
    def reserves_for_input(self, token_in: Token) -> tuple[int, int]:
        """(reserve_in, reserve_out) used by the swap math for ``token_in``."""

    @abstractmethod
    def mid_price(self, token_in: Token) -> Fraction:
        """Raw units of the other token per raw unit of ``token_in``."""

    def get_amount_out(self, amount_in: TokenAmount) -> TokenAmount:
        """
        Output for an exact input, matching Solidity:

        amount_in_with_fee = amount_in * (1e6 - fee)
        amount_out = amount_in_with_fee * reserve_out
                     // (reserve_in * 1e6 + amount_in_with_fee)
        """
        token_in = amount_in.currency.wrapped
        if amount_in.raw <= 0:
            raise ValueError("amount_in must be positive")
        reserve_in, reserve_out = self.reserves_for_input(token_in)
        if reserve_in <= 0 or reserve_out <= 0:
            raise InsufficientLiquidity("pool has no liquidity")

        amount_in_with_fee = amount_in.raw * (FEE_DENOMINATOR - self.fee)
        numerator = amount_in_with_fee * reserve_out
        denominator = reserve_in * FEE_DENOMINATOR + amount_in_with_fee
        amount_out = numerator // denominator
        if amount_out == 0:
            raise InsufficientLiquidity("output rounds to zero")
        return TokenAmount(self.other(token_in), amount_out)

    def get_amount_in(self, amount_out: TokenAmount) -> TokenAmount:
        """Input required for an exact output (inverse of get_amount_out)."""
        token_out = amount_out.currency.wrapped
        if amount_out.raw <= 0:
            raise ValueError("amount_out must be positive")
        token_in = self.other(token_out)
        reserve_in, reserve_out = self.reserves_for_input(token_in)
        if reserve_in <= 0 or reserve_out <= 0:
            raise InsufficientLiquidity("pool has no liquidity")
        if amount_out.raw >= reserve_out:
            raise InsufficientLiquidity("amount_out must be less than reserve_out")

        numerator = reserve_in * amount_out.raw * FEE_DENOMINATOR
        denominator = (reserve_out - amount_out.raw) * (FEE_DENOMINATOR - self.fee)
        return TokenAmount(token_in, numerator // denominator + 1)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.token0}/{self.token1}, fee={self.fee}, "
            f"block={self.block_number})"
        )


class ConstantProductPool(Pool):
    """x*y=k pair (Uniswap v2 style)."""

    protocol = "v2"

    def __init__(
        self,
        token_a: Token,
        token_b: Token,
        reserve_a: int,
        reserve_b: int,
        fee: int = 3_000,
        address: Optional[Address] = None,
        block_number: Optional[int] = None,
    ):
        if not isinstance(reserve_a, int) or not isinstance(reserve_b, int):
            raise TypeError("reserves must be int")
        if reserve_a < 0 or reserve_b < 0:
            raise ValueError("reserves must be non-negative")
        super().__init__(token_a, token_b, fee, address, block_number)
        if self.token0 == token_a:
            self.reserve0, self.reserve1 = reserve_a, reserve_b
        else:
            self.reserve0, self.reserve1 = reserve_b, reserve_a

    def reserves_for_input(self, token_in: Token) -> tuple[int, int]:
        if token_in == self.token0:
            return self.reserve0, self.reserve1
        if token_in == self.token1:
            return self.reserve1, self.reserve0
        raise ValueError("token_in not in pool")

    def mid_price(self, token_in: Token) -> Fraction:
        reserve_in, reserve_out = self.reserves_for_input(token_in)
        if reserve_in == 0:
            raise InsufficientLiquidity("reserve_in is zero")
        return Fraction(reserve_out, reserve_in)


class ConcentratedLiquidityPool(Pool):
    """
    Concentrated-liquidity pool (Uniswap v3 style).

    Quotes assume the swap stays inside the active tick range, where the
    pool behaves like a constant-product pair over its virtual reserves
    x = L / sqrtP and y = L * sqrtP.
    """

    protocol = "v3"

    def __init__(
        self,
        token_a: Token,
        token_b: Token,
        fee: int,
        sqrt_price_x96: int,
        liquidity: int,
        tick: int,
        address: Optional[Address] = None,
        block_number: Optional[int] = None,
    ):
        super().__init__(token_a, token_b, fee, address, block_number)
        if sqrt_price_x96 <= 0:
            raise ValueError("sqrt_price_x96 must be positive")
        if liquidity < 0:
            raise ValueError("liquidity must be non-negative")
        self.sqrt_price_x96 = sqrt_price_x96
        self.liquidity = liquidity
        self.tick = tick

    @property
    def virtual_reserves(self) -> tuple[int, int]:
        reserve0 = self.liquidity * Q96 // self.sqrt_price_x96
        reserve1 = self.liquidity * self.sqrt_price_x96 // Q96
        return reserve0, reserve1

    def reserves_for_input(self, token_in: Token) -> tuple[int, int]:
        reserve0, reserve1 = self.virtual_reserves
        if token_in == self.token0:
            return reserve0, reserve1
        if token_in == self.token1:
            return reserve1, reserve0
        raise ValueError("token_in not in pool")

    def mid_price(self, token_in: Token) -> Fraction:
        token0_price = Fraction(self.sqrt_price_x96**2, Q96**2)
        if token_in == self.token0:
            return token0_price
        if token_in == self.token1:
            return 1 / token0_price
        raise ValueError("token_in not in pool")
