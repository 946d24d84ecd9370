from .call_builder import SwapCallDescriptor, build_swap_calls
from .callback import (
    SwapCallbackFactory,
    SwapCallbackResult,
    SwapCallbackState,
    calculate_gas_margin,
    select_estimated_call,
)
from .errors import EstimationFailed, SwapError, SwapFailed, TransactionRejected, UnsupportedTrade
from .recipient import RecipientResolver, shorten_address
from .transactions import TransactionLog, TransactionRecord

__all__ = [
    "SwapCallDescriptor",
    "build_swap_calls",
    "SwapCallbackFactory",
    "SwapCallbackResult",
    "SwapCallbackState",
    "calculate_gas_margin",
    "select_estimated_call",
    "SwapError",
    "EstimationFailed",
    "SwapFailed",
    "TransactionRejected",
    "UnsupportedTrade",
    "RecipientResolver",
    "shorten_address",
    "TransactionLog",
    "TransactionRecord",
]
