"""Best-trade derivation from client-side quotes or the routing service."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum, auto
from typing import Awaitable, Callable, Optional, Protocol

from chain.errors import ChainError
from core.base_types import Currency, TokenAmount

from .derivation import LatestDerivation
from .pools import Pool, is_fresh
from .quoter import QuoteSource
from .route import Route, RouteFinder
from .routing_api import (
    QuoteError,
    QuoteRequest,
    RoutingApiClient,
    compute_routes,
    transform_routes_to_trade,
)
from .trade import Trade, TradeType

logger = logging.getLogger(__name__)


class TradeState(Enum):
    LOADING = auto()
    INVALID = auto()
    NO_ROUTE_FOUND = auto()
    VALID = auto()


@dataclass(frozen=True)
class TradeResult:
    state: TradeState
    trade: Optional[Trade] = None
    gas_use_estimate_usd: Optional[Decimal] = None


LOADING_RESULT = TradeResult(TradeState.LOADING)


class RoutesProvider(Protocol):
    async def routes(
        self, currency_in: Optional[Currency], currency_out: Optional[Currency]
    ) -> list[Route]: ...


class StaticRoutes:
    """Routes over a fixed set of pool snapshots."""

    def __init__(self, pools: list[Pool], max_hops: int = 2):
        self._finder = RouteFinder(pools)
        self._max_hops = max_hops

    async def routes(
        self, currency_in: Optional[Currency], currency_out: Optional[Currency]
    ) -> list[Route]:
        return self._finder.find_all_routes(currency_in, currency_out, self._max_hops)


def split_currencies(
    trade_type: TradeType,
    amount_specified: Optional[TokenAmount],
    other_currency: Optional[Currency],
) -> tuple[Optional[Currency], Optional[Currency]]:
    """(currency_in, currency_out) for the specified side and the other one."""
    specified = amount_specified.currency if amount_specified is not None else None
    if trade_type == TradeType.EXACT_INPUT:
        return specified, other_currency
    return other_currency, specified


def _has_amount(amount: Optional[TokenAmount]) -> bool:
    """A zero amount is an incomplete input, like a missing one."""
    return amount is not None and amount.raw > 0


class _TradeFinder(ABC):
    """Shared last-input-wins bookkeeping for the finders below."""

    def __init__(self, name: str):
        self._derivation: LatestDerivation[TradeResult] = LatestDerivation(name)

    @property
    def current(self) -> TradeResult:
        return self._derivation.latest or LOADING_RESULT

    @abstractmethod
    async def find(
        self,
        trade_type: TradeType,
        amount_specified: Optional[TokenAmount],
        other_currency: Optional[Currency],
    ) -> Optional[TradeResult]:
        """Derive the trade once; None means the result is stale and must not be committed."""

    async def update(
        self,
        trade_type: TradeType,
        amount_specified: Optional[TokenAmount],
        other_currency: Optional[Currency],
    ) -> Optional[TradeResult]:
        """
        Re-derive for new inputs; a derivation still running for older inputs
        is cancelled and its result is never committed.
        """
        return await self._derivation.run(
            lambda: self.find(trade_type, amount_specified, other_currency)
        )


class ClientSideTradeFinder(_TradeFinder):
    """
    Quotes every candidate route with a ``QuoteSource`` and keeps the best.

    EXACT_INPUT maximises output, EXACT_OUTPUT minimises input; on ties the
    first route seen wins.
    """

    def __init__(self, routes: RoutesProvider, quote_source: QuoteSource):
        super().__init__("client-side trade")
        self._routes = routes
        self._quote_source = quote_source

    async def find(
        self,
        trade_type: TradeType,
        amount_specified: Optional[TokenAmount],
        other_currency: Optional[Currency],
    ) -> Optional[TradeResult]:
        currency_in, currency_out = split_currencies(trade_type, amount_specified, other_currency)
        if not _has_amount(amount_specified) or currency_in is None or currency_out is None:
            return TradeResult(TradeState.INVALID)
        # skip when tokens are the same
        if currency_in == currency_out:
            return TradeResult(TradeState.INVALID)

        try:
            routes = await self._routes.routes(currency_in, currency_out)
        except ChainError as exc:
            logger.warning("loading routes %s -> %s failed: %s", currency_in, currency_out, exc)
            return TradeResult(TradeState.NO_ROUTE_FOUND)
        quotes = await asyncio.gather(
            *(self._quote_route(route, amount_specified, trade_type) for route in routes)
        )

        best: Optional[tuple[Route, TokenAmount, TokenAmount]] = None
        for route, quoted in zip(routes, quotes):
            if quoted is None:
                continue
            if trade_type == TradeType.EXACT_INPUT:
                if best is None or best[2].raw < quoted.raw:
                    best = (route, amount_specified, quoted)
            else:
                if best is None or best[1].raw > quoted.raw:
                    best = (route, quoted, amount_specified)

        if best is None:
            return TradeResult(TradeState.NO_ROUTE_FOUND)

        route, amount_in, amount_out = best
        # mismatch can occur when token direction is reversed and values change asynchronously
        if route.input.wrapped != amount_in.currency.wrapped:
            logger.debug("discarding route %s: input no longer matches", route)
            return None
        if route.output.wrapped != amount_out.currency.wrapped:
            logger.debug("discarding route %s: output no longer matches", route)
            return None

        trade = Trade.create_unchecked(route, amount_in, amount_out, trade_type)
        return TradeResult(TradeState.VALID, trade)

    async def _quote_route(
        self, route: Route, amount: TokenAmount, trade_type: TradeType
    ) -> Optional[TokenAmount]:
        try:
            return await self._quote_source.quote(route, amount, trade_type)
        except ChainError as exc:
            logger.warning("quote failed for %s: %s", route, exc)
            return None


class RoutingApiTradeFinder(_TradeFinder):
    """Builds the trade from the remote routing service's quote."""

    def __init__(
        self,
        client: RoutingApiClient,
        latest_block: Callable[[], Awaitable[int]],
        use_client_side_router: bool = False,
        max_block_age: int = 10,
    ):
        super().__init__("routing API trade")
        self._client = client
        self._latest_block = latest_block
        self._use_client_side_router = use_client_side_router
        self._max_block_age = max_block_age

    async def find(
        self,
        trade_type: TradeType,
        amount_specified: Optional[TokenAmount],
        other_currency: Optional[Currency],
    ) -> Optional[TradeResult]:
        currency_in, currency_out = split_currencies(trade_type, amount_specified, other_currency)
        if not _has_amount(amount_specified) or currency_in is None or currency_out is None:
            return TradeResult(TradeState.INVALID)

        request = QuoteRequest.build(
            currency_in, currency_out, amount_specified, trade_type, self._use_client_side_router
        )
        if request is None:
            return TradeResult(TradeState.NO_ROUTE_FOUND)

        try:
            response, latest = await asyncio.gather(
                asyncio.to_thread(self._client.get_quote, request),
                self._latest_block(),
            )
        except QuoteError as exc:
            logger.debug("routing API quote failed: %s", exc)
            return TradeResult(TradeState.NO_ROUTE_FOUND)
        except ChainError as exc:
            logger.warning("latest block unavailable: %s", exc)
            return TradeResult(TradeState.NO_ROUTE_FOUND)

        if not is_fresh(response.block_number, latest, self._max_block_age):
            logger.debug(
                "dropping quote from block %d, latest is %d", response.block_number, latest
            )
            return TradeResult(TradeState.NO_ROUTE_FOUND)

        try:
            swaps = compute_routes(currency_in, currency_out, response)
        except QuoteError as exc:
            logger.debug("could not decode quote routes: %s", exc)
            return TradeResult(TradeState.NO_ROUTE_FOUND)
        if not swaps:
            return TradeResult(TradeState.NO_ROUTE_FOUND)

        try:
            trade = transform_routes_to_trade(swaps, trade_type, response.gas_use_estimate_usd)
        except ValueError as exc:
            logger.debug("transform_routes_to_trade failed: %s", exc)
            return TradeResult(TradeState.INVALID, gas_use_estimate_usd=response.gas_use_estimate_usd)
        return TradeResult(TradeState.VALID, trade, response.gas_use_estimate_usd)
