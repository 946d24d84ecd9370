"""CLI entrypoint for quoting and submitting swaps."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import Optional, Union

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from chain.abi import decode_uint, function_selector
from chain.client import ChainClient
from chain.errors import ChainError
from chain.provider import EnsNameResolver, RpcWalletProvider
from config import Settings
from core.base_types import Address, Currency, NativeCurrency, Token, TokenAmount, TransactionRequest
from core.wallet_manager import WalletManager
from pricing.derivation import QuotePoller
from pricing.pool_loader import OnChainRoutes, PoolLoader
from pricing.prices import (
    Field,
    compute_trade_price_breakdown,
    format_execution_price,
    format_price_impact,
    slippage_adjusted_amounts,
    warning_severity,
)
from pricing.quoter import make_quote_source
from pricing.routing_api import RoutingApiClient
from pricing.trade import TradeType
from pricing.trade_finder import (
    ClientSideTradeFinder,
    RoutingApiTradeFinder,
    TradeResult,
    TradeState,
)
from swap.callback import SwapCallbackFactory, SwapCallbackState
from swap.errors import SwapError
from swap.recipient import RecipientResolver
from swap.transactions import TransactionLog

logger = logging.getLogger(__name__)

NATIVE_SYMBOLS = {"eth", "native"}

TradeFinder = Union[ClientSideTradeFinder, RoutingApiTradeFinder]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Swap routing CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_trade_arguments(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("token_in", help="Input token address or ETH")
        sub.add_argument("token_out", help="Output token address or ETH")
        sub.add_argument("amount", help="Human amount of the specified side")
        sub.add_argument(
            "--exact-output",
            action="store_true",
            help="Treat amount as the exact output instead of the exact input",
        )
        sub.add_argument(
            "--api",
            action="store_true",
            help="Quote through the routing API instead of client-side routing",
        )
        sub.add_argument("--slippage-bips", type=int, default=None, help="Allowed slippage")

    quote = subparsers.add_parser("quote", help="Find the best trade and print its breakdown")
    add_trade_arguments(quote)
    quote.add_argument(
        "--watch",
        action="store_true",
        help="Re-quote every QUOTE_POLL_INTERVAL seconds until interrupted",
    )

    swap = subparsers.add_parser("swap", help="Quote, then estimate and submit the swap")
    add_trade_arguments(swap)
    swap.add_argument("--recipient", default=None, help="Recipient address or ENS name")

    severity = subparsers.add_parser("severity", help="Warning severity for a price impact")
    severity.add_argument("impact_percent", help="Price impact in percent, e.g. 4.2")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "severity":
            print(warning_severity(_parse_percent(args.impact_percent)))
            return

        settings = Settings.from_env()
        if not settings.rpc_urls:
            raise ValueError("RPC_URLS env var is required")
        client = ChainClient(settings.rpc_urls)

        if args.command == "quote" and args.watch:
            asyncio.run(_watch(args, settings, client))
            return

        if args.command == "quote":
            result = asyncio.run(_find_trade(args, settings, client))
            _print_trade(result, _slippage(args, settings))
            return

        if args.command == "swap":
            tx_hash = asyncio.run(_swap(args, settings, client))
            print(tx_hash)
            return
    except (ValueError, ChainError, SwapError) as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("stopped")


def _slippage(args: argparse.Namespace, settings: Settings) -> int:
    if args.slippage_bips is None:
        return settings.default_slippage_bips
    return args.slippage_bips


def _parse_percent(value: str) -> Fraction:
    try:
        return Fraction(Decimal(value)) / 100
    except InvalidOperation as exc:
        raise ValueError(f"invalid percent {value!r}") from exc


def _load_currency(client: ChainClient, chain_id: int, ident: str) -> Currency:
    if ident.lower() in NATIVE_SYMBOLS:
        return NativeCurrency(chain_id)
    address = Address(ident)
    raw_decimals = client.call(TransactionRequest(to=address, data=function_selector("decimals()")))
    if len(raw_decimals) < 32:
        raise ValueError(f"{address} does not look like an ERC-20 token")
    symbol: Optional[str] = None
    try:
        raw_symbol = client.call(TransactionRequest(to=address, data=function_selector("symbol()")))
        (symbol,) = decode(["string"], raw_symbol)
    except (ChainError, DecodingError) as exc:
        logger.debug("no string symbol for %s: %s", address, exc)
    return Token(chain_id, address, decode_uint(raw_decimals), symbol)


def _build_finder(args: argparse.Namespace, settings: Settings, client: ChainClient) -> TradeFinder:
    if args.api:
        return RoutingApiTradeFinder(
            RoutingApiClient(settings.routing_api_url),
            lambda: asyncio.to_thread(client.get_block_number),
            use_client_side_router=settings.use_client_side_router,
            max_block_age=settings.max_quote_block_age,
        )
    routes = OnChainRoutes(
        PoolLoader(client, settings.chain_id),
        client,
        max_block_age=settings.max_quote_block_age,
    )
    return ClientSideTradeFinder(
        routes, make_quote_source(settings.quote_backend, client, settings.chain_id)
    )


async def _trade_inputs(
    args: argparse.Namespace, settings: Settings, client: ChainClient
) -> tuple[TradeType, TokenAmount, Currency]:
    currency_in, currency_out = await asyncio.gather(
        asyncio.to_thread(_load_currency, client, settings.chain_id, args.token_in),
        asyncio.to_thread(_load_currency, client, settings.chain_id, args.token_out),
    )
    trade_type = TradeType.EXACT_OUTPUT if args.exact_output else TradeType.EXACT_INPUT
    specified = currency_out if args.exact_output else currency_in
    other = currency_in if args.exact_output else currency_out
    return trade_type, TokenAmount.from_human(specified, Decimal(args.amount)), other


async def _find_trade(
    args: argparse.Namespace, settings: Settings, client: ChainClient
) -> TradeResult:
    trade_type, amount, other = await _trade_inputs(args, settings, client)
    finder = _build_finder(args, settings, client)
    result = await finder.update(trade_type, amount, other)
    return result or finder.current


async def _watch(args: argparse.Namespace, settings: Settings, client: ChainClient) -> None:
    trade_type, amount, other = await _trade_inputs(args, settings, client)
    finder = _build_finder(args, settings, client)
    slippage_bips = _slippage(args, settings)
    poller = QuotePoller(
        lambda: finder.find(trade_type, amount, other),
        interval=settings.quote_poll_interval,
        on_result=lambda result: _print_trade(result, slippage_bips),
    )
    await poller.run()


def _print_trade(result: TradeResult, slippage_bips: int) -> None:
    if result.state != TradeState.VALID or result.trade is None:
        print(result.state.name)
        return
    trade = result.trade
    breakdown = compute_trade_price_breakdown(trade)
    bounds = slippage_adjusted_amounts(trade, slippage_bips)
    print(f"input:         {trade.input_amount}")
    print(f"output:        {trade.output_amount}")
    print(f"price:         {format_execution_price(trade)}")
    print(f"maximum in:    {bounds[Field.INPUT]}")
    print(f"minimum out:   {bounds[Field.OUTPUT]}")
    print(f"price impact:  {format_price_impact(breakdown.price_impact_without_fee)}")
    print(f"lp fee:        {breakdown.realized_lp_fee_amount}")
    print(f"severity:      {warning_severity(breakdown.price_impact_without_fee)}")
    for route in trade.routes:
        print(f"route:         {route}")
    if result.gas_use_estimate_usd is not None:
        print(f"gas (usd):     {result.gas_use_estimate_usd}")


async def _swap(args: argparse.Namespace, settings: Settings, client: ChainClient) -> str:
    result = await _find_trade(args, settings, client)
    if result.state != TradeState.VALID:
        raise ValueError(f"no trade: {result.state.name}")

    if not settings.private_key:
        raise ValueError("PRIVATE_KEY env var is required to swap")
    wallet = WalletManager(settings.private_key)
    provider = RpcWalletProvider(client, settings.chain_id, wallet)
    resolver = RecipientResolver(EnsNameResolver(settings.rpc_urls[0]))
    if args.recipient is not None:
        await resolver.resolve(args.recipient)

    factory = SwapCallbackFactory(
        provider, TransactionLog(), resolver, gas_margin_bips=settings.gas_margin_bips
    )
    deadline = int(time.time()) + settings.deadline_seconds
    swap = factory.create(result.trade, _slippage(args, settings), args.recipient, deadline)
    if swap.state != SwapCallbackState.VALID or swap.callback is None:
        raise ValueError(swap.error or f"swap not ready: {swap.state.name}")
    return await swap.callback()


if __name__ == "__main__":
    main()
