"""Encodes router calls for a trade: one standard call plus fallbacks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from chain.abi import encode_call, encode_path
from core.base_types import Address, bips_to_fraction
from pricing.trade import Trade, TradeType

from .errors import UnsupportedTrade

V2_ROUTER_ADDRESS = Address("0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D")
V3_ROUTER_ADDRESS = Address("0xE592427A0AEce92De3Edee1F18E0157C05861564")

V2_ROUTER_ADDRESSES: dict[int, Address] = {
    chain_id: V2_ROUTER_ADDRESS for chain_id in (1, 3, 4, 5, 42)
}
V3_ROUTER_ADDRESSES: dict[int, Address] = {
    chain_id: V3_ROUTER_ADDRESS for chain_id in (1, 3, 4, 5, 10, 42, 137, 42161)
}

_V2_ARGS = ["uint256", "uint256", "address[]", "address", "uint256"]
_V2_ETH_IN_ARGS = ["uint256", "address[]", "address", "uint256"]
_EXACT_PARAMS = "(bytes,address,uint256,uint256,uint256)"


@dataclass(frozen=True)
class SwapCallDescriptor:
    """One candidate router call: method, arguments and attached native value."""

    target: Address
    method: str
    arg_types: tuple[str, ...]
    args: tuple[Any, ...]
    value: int = 0

    @property
    def signature(self) -> str:
        return f"{self.method}({','.join(self.arg_types)})"

    @property
    def calldata(self) -> bytes:
        return encode_call(self.signature, list(self.arg_types), list(self.args))


def v2_swap_call(
    trade: Trade,
    router: Address,
    recipient: Address,
    allowed_slippage_bips: int,
    deadline: int,
    fee_on_transfer: bool = False,
) -> SwapCallDescriptor:
    """Router02 call for a single-route v2 trade."""
    ether_in = trade.input_currency.is_native
    ether_out = trade.output_currency.is_native
    if ether_in and ether_out:
        raise UnsupportedTrade("Ether in and out")
    if fee_on_transfer and trade.trade_type == TradeType.EXACT_OUTPUT:
        raise UnsupportedTrade("fee on transfer is only possible for exact input")

    tolerance = bips_to_fraction(allowed_slippage_bips)
    amount_in = trade.maximum_amount_in(tolerance).raw
    amount_out = trade.minimum_amount_out(tolerance).raw
    path = [token.address.checksum for token in trade.route.path]
    to = recipient.checksum
    suffix = "SupportingFeeOnTransferTokens" if fee_on_transfer else ""

    if trade.trade_type == TradeType.EXACT_INPUT:
        if ether_in:
            return SwapCallDescriptor(
                router,
                f"swapExactETHForTokens{suffix}",
                tuple(_V2_ETH_IN_ARGS),
                (amount_out, path, to, deadline),
                value=amount_in,
            )
        method = "swapExactTokensForETH" if ether_out else "swapExactTokensForTokens"
        return SwapCallDescriptor(
            router, f"{method}{suffix}", tuple(_V2_ARGS), (amount_in, amount_out, path, to, deadline)
        )

    if ether_in:
        return SwapCallDescriptor(
            router,
            "swapETHForExactTokens",
            tuple(_V2_ETH_IN_ARGS),
            (amount_out, path, to, deadline),
            value=amount_in,
        )
    method = "swapTokensForExactETH" if ether_out else "swapTokensForExactTokens"
    return SwapCallDescriptor(
        router, method, tuple(_V2_ARGS), (amount_out, amount_in, path, to, deadline)
    )


def v3_swap_call(
    trade: Trade,
    router: Address,
    recipient: Address,
    allowed_slippage_bips: int,
    deadline: int,
) -> SwapCallDescriptor:
    """
    SwapRouter call for a v3 trade.

    Several routes, a native output (router unwraps WETH) or a native input
    on an exact-output trade (router refunds the excess) go through
    ``multicall``.
    """
    ether_in = trade.input_currency.is_native
    ether_out = trade.output_currency.is_native
    if ether_in and ether_out:
        raise UnsupportedTrade("Ether in and out")

    tolerance = bips_to_fraction(allowed_slippage_bips)
    method = "exactInput" if trade.trade_type == TradeType.EXACT_INPUT else "exactOutput"
    swap_recipient = router if ether_out else recipient
    single_calls: list[tuple[Any, ...]] = []
    total_value = 0

    for swap in trade.swaps:
        sub_trade = Trade([swap], trade.trade_type)
        amount_in = sub_trade.maximum_amount_in(tolerance).raw
        amount_out = sub_trade.minimum_amount_out(tolerance).raw
        addresses = [token.address.checksum for token in swap.route.path]
        fees = [pool.fee for pool in swap.route.pools]
        if ether_in:
            total_value += amount_in
        if trade.trade_type == TradeType.EXACT_INPUT:
            params = (encode_path(addresses, fees), swap_recipient.checksum, deadline, amount_in, amount_out)
        else:
            # exact output paths are encoded output first
            params = (
                encode_path(addresses[::-1], fees[::-1]),
                swap_recipient.checksum,
                deadline,
                amount_out,
                amount_in,
            )
        single_calls.append(params)

    needs_refund = ether_in and trade.trade_type == TradeType.EXACT_OUTPUT
    if len(single_calls) == 1 and not ether_out and not needs_refund:
        return SwapCallDescriptor(
            router, method, (_EXACT_PARAMS,), (single_calls[0],), value=total_value
        )

    calldatas = [
        encode_call(f"{method}({_EXACT_PARAMS})", [_EXACT_PARAMS], [params])
        for params in single_calls
    ]
    if ether_out:
        minimum_out = trade.minimum_amount_out(tolerance).raw
        calldatas.append(
            encode_call(
                "unwrapWETH9(uint256,address)",
                ["uint256", "address"],
                [minimum_out, recipient.checksum],
            )
        )
    if needs_refund:
        calldatas.append(encode_call("refundETH()", [], []))
    return SwapCallDescriptor(router, "multicall", ("bytes[]",), (calldatas,), value=total_value)


def build_swap_calls(
    trade: Optional[Trade],
    chain_id: int,
    recipient: Optional[Address],
    allowed_slippage_bips: int,
    deadline: Optional[int],
) -> list[SwapCallDescriptor]:
    """
    Candidate calls for ``trade`` in order of preference.

    v2 exact-input trades get a second, fee-on-transfer tolerant call.
    Missing inputs (trade, recipient, deadline) give no candidates.
    """
    if trade is None or recipient is None or deadline is None:
        return []

    protocols = {route.protocol for route in trade.routes}
    if protocols == {"v2"}:
        if len(trade.swaps) != 1:
            raise UnsupportedTrade("v2 router cannot split a trade across routes")
        router = V2_ROUTER_ADDRESSES.get(chain_id)
        if router is None:
            raise UnsupportedTrade(f"no v2 router on chain {chain_id}")
        calls = [v2_swap_call(trade, router, recipient, allowed_slippage_bips, deadline)]
        if trade.trade_type == TradeType.EXACT_INPUT:
            calls.append(
                v2_swap_call(
                    trade, router, recipient, allowed_slippage_bips, deadline, fee_on_transfer=True
                )
            )
        return calls

    if protocols == {"v3"}:
        router = V3_ROUTER_ADDRESSES.get(chain_id)
        if router is None:
            raise UnsupportedTrade(f"no v3 router on chain {chain_id}")
        return [v3_swap_call(trade, router, recipient, allowed_slippage_bips, deadline)]

    raise UnsupportedTrade(f"cannot encode routes over {sorted(protocols)}")
