"""
Swap submission: gas estimation fan-out, call selection and sending.

``SwapCallbackFactory.create`` checks preconditions only. Estimation
failures surface when the returned callback is awaited.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Awaitable, Callable, Optional, Sequence, Union

from eth_utils.address import is_address

from chain.errors import USER_REJECTED_CODE, CallReverted, ChainError, RPCError
from chain.provider import WalletProvider
from core.base_types import BIPS_BASE, Address, TransactionRequest
from core.result import Invalid, Pending, Result, combine, from_optional
from pricing.trade import Trade

from .call_builder import SwapCallDescriptor, build_swap_calls
from .errors import EstimationFailed, SwapFailed, TransactionRejected, UnsupportedTrade
from .recipient import RecipientResolver, shorten_address
from .transactions import TransactionLog

logger = logging.getLogger(__name__)

DEFAULT_GAS_MARGIN_BIPS = 1000

SLIPPAGE_REVERT_REASONS = frozenset(
    {
        "UniswapV2Router: INSUFFICIENT_OUTPUT_AMOUNT",
        "UniswapV2Router: EXCESSIVE_INPUT_AMOUNT",
        "Too little received",
        "Too much requested",
    }
)

UNEXPECTED_ESTIMATION_ISSUE = "Unexpected issue with estimating the gas. Please try again."
SLIPPAGE_FAILURE = (
    "This transaction will not succeed either due to price movement or fee on transfer. "
    "Try increasing your slippage tolerance."
)
NO_CALL_FAILED = "Unexpected error. Please contact support: none of the calls threw an error"
MISSING_DEPENDENCIES = "Missing dependencies"


class SwapCallbackState(Enum):
    INVALID = auto()
    LOADING = auto()
    VALID = auto()


SwapCallback = Callable[[], Awaitable[str]]


@dataclass(frozen=True)
class SwapCallbackResult:
    state: SwapCallbackState
    callback: Optional[SwapCallback] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SuccessfulCall:
    call: SwapCallDescriptor
    gas_estimate: int


@dataclass(frozen=True)
class FailedCall:
    call: SwapCallDescriptor
    error: str


EstimatedCall = Union[SuccessfulCall, FailedCall]


def calculate_gas_margin(gas: int, margin_bips: int = DEFAULT_GAS_MARGIN_BIPS) -> int:
    """Gas limit with a safety margin added, e.g. 1000 bips is +10%."""
    return gas * (BIPS_BASE + margin_bips) // BIPS_BASE


def revert_message(reason: Optional[str]) -> str:
    """User-facing message for a simulated call that reverted with ``reason``."""
    if reason in SLIPPAGE_REVERT_REASONS:
        return SLIPPAGE_FAILURE
    return (
        f"The transaction cannot succeed due to error: {reason}. "
        "This is probably an issue with one of the tokens you are swapping."
    )


def select_estimated_call(estimated: Sequence[EstimatedCall]) -> SuccessfulCall:
    """
    Pick the call to submit from the per-candidate outcomes.

    A later successful estimate wins over an earlier one, so the
    fee-on-transfer variant is used whenever it also estimates. With no
    success, the last captured failure is raised.
    """
    selected: Optional[SuccessfulCall] = None
    for outcome in estimated:
        if isinstance(outcome, SuccessfulCall):
            selected = outcome
    if selected is not None:
        return selected

    failures = [outcome for outcome in estimated if isinstance(outcome, FailedCall)]
    if failures:
        raise EstimationFailed(failures[-1].error)
    raise EstimationFailed(NO_CALL_FAILED)


def swap_summary(
    trade: Trade,
    recipient: Address,
    account: Address,
    recipient_or_name: Optional[str] = None,
) -> str:
    """e.g. ``Swap 1.23 TKA for 4.56 TKB to 0x1234...abcd``"""
    input_amount = trade.input_amount.to_significant(3)
    output_amount = trade.output_amount.to_significant(3)
    base = (
        f"Swap {input_amount} {trade.input_currency.symbol} "
        f"for {output_amount} {trade.output_currency.symbol}"
    )
    if recipient == account:
        return base
    if recipient_or_name and not is_address(recipient_or_name):
        return f"{base} to {recipient_or_name}"
    return f"{base} to {shorten_address(recipient)}"


class SwapCallbackFactory:
    """Builds submission callbacks bound to a provider and a transaction log."""

    def __init__(
        self,
        provider: Optional[WalletProvider],
        transaction_log: TransactionLog,
        resolver: Optional[RecipientResolver] = None,
        gas_margin_bips: int = DEFAULT_GAS_MARGIN_BIPS,
    ):
        self._provider = provider
        self._transaction_log = transaction_log
        self._resolver = resolver or RecipientResolver()
        self._gas_margin_bips = gas_margin_bips

    def create(
        self,
        trade: Optional[Trade],
        allowed_slippage_bips: int,
        recipient_or_name: Optional[str] = None,
        deadline: Optional[int] = None,
    ) -> SwapCallbackResult:
        provider = self._provider
        account = provider.account if provider is not None else None
        chain_id = provider.chain_id if provider is not None else None
        ready = combine(
            from_optional(trade, MISSING_DEPENDENCIES),
            from_optional(provider, MISSING_DEPENDENCIES),
            from_optional(account, MISSING_DEPENDENCIES),
            from_optional(chain_id or None, MISSING_DEPENDENCIES),
            self._recipient(recipient_or_name, account),
        )
        if isinstance(ready, Pending):
            return SwapCallbackResult(SwapCallbackState.LOADING)
        if isinstance(ready, Invalid):
            return SwapCallbackResult(SwapCallbackState.INVALID, error=ready.reason)
        trade, provider, account, chain_id, recipient = ready.value

        try:
            calls = build_swap_calls(trade, chain_id, recipient, allowed_slippage_bips, deadline)
        except UnsupportedTrade as exc:
            return SwapCallbackResult(SwapCallbackState.INVALID, error=str(exc))
        if not calls:
            return SwapCallbackResult(SwapCallbackState.INVALID, error=MISSING_DEPENDENCIES)

        summary = swap_summary(trade, recipient, account, recipient_or_name)

        async def callback() -> str:
            return await self._submit(provider, account, calls, summary)

        return SwapCallbackResult(SwapCallbackState.VALID, callback=callback)

    def _recipient(
        self, recipient_or_name: Optional[str], account: Optional[Address]
    ) -> Result[Address]:
        if recipient_or_name is None:
            return from_optional(account, MISSING_DEPENDENCIES)
        return self._resolver.lookup(recipient_or_name)

    async def _estimate(
        self, provider: WalletProvider, account: Address, call: SwapCallDescriptor
    ) -> EstimatedCall:
        tx = TransactionRequest(
            to=call.target, data=call.calldata, value=call.value, sender=account
        )
        try:
            gas = await provider.estimate_gas(tx)
            return SuccessfulCall(call, gas)
        except ChainError as gas_error:
            logger.debug("gas estimate failed for %s: %s", call.method, gas_error)

        try:
            await provider.call(tx)
        except CallReverted as exc:
            logger.debug("call %s reverted: %s", call.method, exc.reason or exc)
            return FailedCall(call, revert_message(exc.reason or str(exc)))
        except ChainError as exc:
            logger.debug("call %s failed: %s", call.method, exc)
            return FailedCall(call, revert_message(str(exc)))
        logger.debug("estimate gas failed but call succeeded for %s", call.method)
        return FailedCall(call, UNEXPECTED_ESTIMATION_ISSUE)

    async def _submit(
        self,
        provider: WalletProvider,
        account: Address,
        calls: list[SwapCallDescriptor],
        summary: str,
    ) -> str:
        estimated = await asyncio.gather(
            *(self._estimate(provider, account, call) for call in calls)
        )
        selected = select_estimated_call(estimated)
        call = selected.call

        tx = TransactionRequest(
            to=call.target,
            data=call.calldata,
            value=call.value,
            sender=account,
            gas_limit=calculate_gas_margin(selected.gas_estimate, self._gas_margin_bips),
            chain_id=provider.chain_id,
        )
        try:
            tx_hash = await provider.send_transaction(tx)
        except RPCError as exc:
            if exc.code == USER_REJECTED_CODE:
                raise TransactionRejected() from exc
            self._log_failure(call, exc)
            raise SwapFailed(f"Swap failed: {exc}") from exc
        except (ChainError, ValueError) as exc:
            self._log_failure(call, exc)
            raise SwapFailed(f"Swap failed: {exc}") from exc

        self._transaction_log.add(tx_hash, summary, sender=account.checksum)
        return tx_hash

    @staticmethod
    def _log_failure(call: SwapCallDescriptor, exc: Exception) -> None:
        logger.error(
            "Swap failed: %s method=%s args=%s value=%s",
            exc,
            call.method,
            call.args,
            call.value,
        )
