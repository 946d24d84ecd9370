from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import requests

from core.base_types import Address, Currency, Token, TokenAmount

from .pools import ConcentratedLiquidityPool, ConstantProductPool, Pool
from .route import Route
from .trade import Swap, Trade, TradeType

logger = logging.getLogger(__name__)


class QuoteError(RuntimeError):
    """Raised when a quote cannot be produced."""


@dataclass(frozen=True)
class QuoteRequest:
    """Query for the routing service; tokens are the wrapped sides of the pair."""

    amount: int
    token_in: Token
    token_out: Token
    trade_type: TradeType
    use_client_side_router: bool = False

    @classmethod
    def build(
        cls,
        currency_in: Optional[Currency],
        currency_out: Optional[Currency],
        amount: Optional[TokenAmount],
        trade_type: TradeType,
        use_client_side_router: bool = False,
    ) -> Optional["QuoteRequest"]:
        """None when the query should be skipped."""
        if currency_in is None or currency_out is None or amount is None:
            return None
        if currency_in == currency_out:
            return None
        return cls(
            amount=amount.raw,
            token_in=currency_in.wrapped,
            token_out=currency_out.wrapped,
            trade_type=trade_type,
            use_client_side_router=use_client_side_router,
        )

    def to_params(self) -> Dict[str, Any]:
        return {
            "amount": str(self.amount),
            "tokenInAddress": self.token_in.address.checksum,
            "tokenInChainId": self.token_in.chain_id,
            "tokenInDecimals": self.token_in.decimals,
            "tokenInSymbol": self.token_in.symbol,
            "tokenOutAddress": self.token_out.address.checksum,
            "tokenOutChainId": self.token_out.chain_id,
            "tokenOutDecimals": self.token_out.decimals,
            "tokenOutSymbol": self.token_out.symbol,
            "useClientSideRouter": str(self.use_client_side_router).lower(),
            "type": "exactIn" if self.trade_type == TradeType.EXACT_INPUT else "exactOut",
        }


@dataclass
class QuoteResponse:
    """
    Routing service answer.

    ``quote`` is the raw amount of the non-specified side; ``route`` is the
    serialized list of routes, each a list of pool hops.
    """

    quote: int
    block_number: int
    gas_use_estimate_usd: Optional[Decimal]
    route: list

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "QuoteResponse":
        try:
            quote = int(data["quote"])
            block_number = int(data.get("blockNumber", 0))
            route = data.get("route") or []
        except (KeyError, ValueError, TypeError) as exc:
            raise QuoteError(f"Unexpected routing API response schema: {data}") from exc
        gas_usd: Optional[Decimal] = None
        if data.get("gasUseEstimateUSD") not in (None, ""):
            try:
                gas_usd = Decimal(str(data["gasUseEstimateUSD"]))
            except InvalidOperation:
                logger.debug("ignoring malformed gasUseEstimateUSD %r", data["gasUseEstimateUSD"])
        if not isinstance(route, list):
            raise QuoteError("route must be a list")
        return cls(quote=quote, block_number=block_number, gas_use_estimate_usd=gas_usd, route=route)


class RoutingApiClient:
    """Client for the remote routing/quote service."""

    def __init__(self, base_url: str, timeout_seconds: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._session = requests.Session()

    def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout)
        except requests.RequestException as exc:
            raise QuoteError(f"routing API unreachable: {exc}") from exc
        try:
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise QuoteError(f"routing API request failed: {exc}  body={resp.text!r}") from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise QuoteError(f"Invalid JSON from routing API: {resp.text!r}") from exc

    def get_quote(self, request: QuoteRequest) -> QuoteResponse:
        data = self._get("/quote", request.to_params())
        response = QuoteResponse.from_json(data)
        logger.debug(
            "routing API quote: amount=%s quote=%s block=%d routes=%d",
            request.amount,
            response.quote,
            response.block_number,
            len(response.route),
        )
        return response


def _parse_token(data: Dict[str, Any]) -> Token:
    return Token(
        chain_id=int(data["chainId"]),
        address=Address(data["address"]),
        decimals=int(data["decimals"]),
        symbol=data.get("symbol"),
    )


def _parse_pool(hop: Dict[str, Any]) -> Pool:
    token_in = _parse_token(hop["tokenIn"])
    token_out = _parse_token(hop["tokenOut"])
    address = Address(hop["address"]) if hop.get("address") else None
    if hop.get("type") == "v3-pool":
        return ConcentratedLiquidityPool(
            token_in,
            token_out,
            int(hop["fee"]),
            sqrt_price_x96=int(hop["sqrtRatioX96"]),
            liquidity=int(hop["liquidity"]),
            tick=int(hop["tickCurrent"]),
            address=address,
        )
    if hop.get("type") == "v2-pool":
        reserve0 = hop["reserve0"]
        reserve1 = hop["reserve1"]
        return ConstantProductPool(
            _parse_token(reserve0["token"]),
            _parse_token(reserve1["token"]),
            int(reserve0["quotient"]),
            int(reserve1["quotient"]),
            address=address,
        )
    raise QuoteError(f"unknown pool type {hop.get('type')!r}")


def compute_routes(
    currency_in: Currency,
    currency_out: Currency,
    response: QuoteResponse,
) -> list[Swap]:
    """Decode the serialized routes of a quote into priced swaps."""
    swaps: list[Swap] = []
    try:
        for hops in response.route:
            if not hops:
                raise QuoteError("empty route")
            raw_in = hops[0].get("amountIn")
            raw_out = hops[-1].get("amountOut")
            if raw_in is None or raw_out is None:
                raise QuoteError("Expected both amountIn and amountOut to be present")
            route = Route([_parse_pool(hop) for hop in hops], currency_in, currency_out)
            swaps.append(
                Swap(
                    route,
                    TokenAmount(currency_in, int(raw_in)),
                    TokenAmount(currency_out, int(raw_out)),
                )
            )
    except (KeyError, TypeError, ValueError) as exc:
        raise QuoteError(f"malformed route in quote response: {exc}") from exc
    return swaps


def transform_routes_to_trade(
    swaps: list[Swap], trade_type: TradeType, gas_use_estimate_usd: Optional[Decimal]
) -> Trade:
    return Trade(swaps, trade_type, gas_use_estimate_usd=gas_use_estimate_usd)
