"""Core type definitions shared by routing, swap and permit modules."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from fractions import Fraction
from typing import Optional, Union

from eth_utils.address import is_address, to_checksum_address

BIPS_BASE = 10_000
ONE_HUNDRED_PERCENT = Fraction(1)
ZERO_PERCENT = Fraction(0)


def bips_to_fraction(bips: int) -> Fraction:
    """Convert basis points (1/10000ths) to an exact fraction."""
    if not isinstance(bips, int):
        raise TypeError("bips must be int")
    return Fraction(bips, BIPS_BASE)


@dataclass(frozen=True)
class Address:
    """Ethereum address with validation and checksumming."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeError("Address value must be a string")
        if not is_address(self.value):
            raise ValueError("Invalid Ethereum address")
        object.__setattr__(self, "value", to_checksum_address(self.value))

    @classmethod
    def from_string(cls, s: str) -> "Address":
        return cls(s)

    @property
    def checksum(self) -> str:
        return self.value

    @property
    def lower(self) -> str:
        return self.value.lower()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Address):
            return self.lower == other.lower
        if isinstance(other, str):
            return self.lower == other.lower()
        return False

    def __hash__(self) -> int:
        return hash(self.lower)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Token:
    """ERC-20 token on a specific chain."""

    chain_id: int
    address: Address
    decimals: int
    symbol: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.address, str):
            object.__setattr__(self, "address", Address(self.address))
        if not isinstance(self.decimals, int) or not 0 <= self.decimals < 255:
            raise ValueError("decimals must be an integer in [0, 255)")

    @property
    def is_native(self) -> bool:
        return False

    @property
    def is_token(self) -> bool:
        return True

    @property
    def wrapped(self) -> "Token":
        return self

    def sorts_before(self, other: "Token") -> bool:
        """Canonical pool ordering: lower address is token0."""
        if self.chain_id != other.chain_id:
            raise ValueError("tokens are on different chains")
        if self.address == other.address:
            raise ValueError("tokens are identical")
        return self.address.lower < other.address.lower

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Token):
            return False
        return self.chain_id == other.chain_id and self.address == other.address

    def __hash__(self) -> int:
        return hash((self.chain_id, self.address.lower))

    def __str__(self) -> str:
        return self.symbol or self.address.checksum


WRAPPED_NATIVE: dict[int, Token] = {
    1: Token(1, Address("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"), 18, "WETH", "Wrapped Ether"),
    3: Token(3, Address("0xc778417E063141139Fce010982780140Aa0cD5Ab"), 18, "WETH", "Wrapped Ether"),
    4: Token(4, Address("0xc778417E063141139Fce010982780140Aa0cD5Ab"), 18, "WETH", "Wrapped Ether"),
    5: Token(5, Address("0xB4FBF271143F4FBf7B91A5ded31805e42b2208d6"), 18, "WETH", "Wrapped Ether"),
    10: Token(10, Address("0x4200000000000000000000000000000000000006"), 18, "WETH", "Wrapped Ether"),
    42: Token(42, Address("0xd0A1E359811322d97991E03f863a0C30C2cF029C"), 18, "WETH", "Wrapped Ether"),
    137: Token(137, Address("0x0d500B1d8E8eF31E21C99d1Db9A6444d3ADf1270"), 18, "WMATIC", "Wrapped MATIC"),
    42161: Token(42161, Address("0x82aF49447D8a07e3bd95BD0d56f35241523fBab1"), 18, "WETH", "Wrapped Ether"),
}


@dataclass(frozen=True)
class NativeCurrency:
    """The chain's native asset (ETH, MATIC, ...)."""

    chain_id: int
    decimals: int = 18
    symbol: str = "ETH"
    name: str = "Ether"

    @property
    def is_native(self) -> bool:
        return True

    @property
    def is_token(self) -> bool:
        return False

    @property
    def wrapped(self) -> Token:
        token = WRAPPED_NATIVE.get(self.chain_id)
        if token is None:
            raise ValueError(f"No wrapped native token for chain {self.chain_id}")
        return token

    def __eq__(self, other: object) -> bool:
        return isinstance(other, NativeCurrency) and self.chain_id == other.chain_id

    def __hash__(self) -> int:
        return hash(("native", self.chain_id))

    def __str__(self) -> str:
        return self.symbol


Currency = Union[Token, NativeCurrency]


@dataclass(frozen=True)
class TokenAmount:
    """
    Exact amount of a currency in its smallest unit.

    All arithmetic stays on integers; ``human`` and ``to_significant`` are
    for display only.
    """

    currency: Currency
    raw: int

    def __post_init__(self) -> None:
        if isinstance(self.raw, bool) or not isinstance(self.raw, int):
            raise TypeError("raw must be an int")
        if self.raw < 0:
            raise ValueError("raw must be non-negative")

    @classmethod
    def from_human(cls, currency: Currency, amount: str | Decimal) -> "TokenAmount":
        """Create from human-readable amount (e.g., '1.5' ETH)."""
        if isinstance(amount, float):
            raise TypeError("amount must be a string or Decimal, not float")
        if isinstance(amount, str):
            decimal_amount = Decimal(amount)
        elif isinstance(amount, Decimal):
            decimal_amount = amount
        else:
            raise TypeError("amount must be a string or Decimal")

        raw_decimal = decimal_amount.scaleb(currency.decimals)
        if raw_decimal != raw_decimal.to_integral_value():
            raise ValueError("amount has more precision than decimals allow")
        return cls(currency=currency, raw=int(raw_decimal))

    @property
    def decimals(self) -> int:
        return self.currency.decimals

    @property
    def symbol(self) -> Optional[str]:
        return self.currency.symbol

    @property
    def human(self) -> Decimal:
        """Returns human-readable decimal."""
        return Decimal(self.raw).scaleb(-self.currency.decimals)

    @property
    def wrapped(self) -> "TokenAmount":
        if self.currency.is_token:
            return self
        return TokenAmount(self.currency.wrapped, self.raw)

    def multiply(self, factor: Fraction) -> "TokenAmount":
        """Scale by an exact fraction, truncating toward zero."""
        if isinstance(factor, float):
            raise TypeError("factor must be Fraction or int, not float")
        factor = Fraction(factor)
        return TokenAmount(self.currency, self.raw * factor.numerator // factor.denominator)

    def to_significant(self, digits: int = 6) -> str:
        if self.raw == 0:
            return "0"
        with localcontext() as ctx:
            ctx.prec = digits
            ctx.rounding = ROUND_HALF_UP
            value = +self.human
        return format(value.normalize(), "f")

    def _check_currency(self, other: "TokenAmount") -> None:
        if self.currency != other.currency:
            raise ValueError("TokenAmount currencies must match")

    def __add__(self, other: "TokenAmount") -> "TokenAmount":
        if not isinstance(other, TokenAmount):
            return NotImplemented
        self._check_currency(other)
        return TokenAmount(self.currency, self.raw + other.raw)

    def __sub__(self, other: "TokenAmount") -> "TokenAmount":
        if not isinstance(other, TokenAmount):
            return NotImplemented
        self._check_currency(other)
        return TokenAmount(self.currency, self.raw - other.raw)

    def __lt__(self, other: "TokenAmount") -> bool:
        self._check_currency(other)
        return self.raw < other.raw

    def __str__(self) -> str:
        return f"{self.human} {self.symbol or ''}".strip()


@dataclass
class TransactionRequest:
    """A call or transaction against a contract."""

    to: Address
    data: bytes
    value: int = 0
    sender: Optional[Address] = None
    nonce: Optional[int] = None
    gas_limit: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee: Optional[int] = None
    chain_id: int = 1

    def to_dict(self) -> dict:
        """Convert to web3-compatible dict."""
        payload: dict[str, object] = {
            "to": self.to.checksum,
            "value": self.value,
            "data": f"0x{self.data.hex()}",
            "chainId": self.chain_id,
        }
        if self.sender is not None:
            payload["from"] = self.sender.checksum
        if self.nonce is not None:
            payload["nonce"] = self.nonce
        if self.gas_limit is not None:
            payload["gas"] = self.gas_limit
        if self.max_fee_per_gas is not None:
            payload["maxFeePerGas"] = self.max_fee_per_gas
        if self.max_priority_fee is not None:
            payload["maxPriorityFeePerGas"] = self.max_priority_fee
        return payload

    def to_rpc(self) -> dict:
        """Hex-encode integer fields for raw JSON-RPC calls."""
        payload: dict[str, object] = {
            "to": self.to.checksum,
            "data": f"0x{self.data.hex()}",
        }
        if self.value:
            payload["value"] = hex(self.value)
        if self.sender is not None:
            payload["from"] = self.sender.checksum
        if self.gas_limit:
            payload["gas"] = hex(self.gas_limit)
        return payload
