from .client import ChainClient, GasPrice
from .errors import (
    CallReverted,
    ChainError,
    InsufficientFunds,
    NameResolutionError,
    NonceTooLow,
    ReplacementUnderpriced,
    RPCError,
    UserRejected,
)
from .provider import EnsNameResolver, NameResolver, RpcWalletProvider, WalletProvider
from .transaction_builder import TransactionBuilder

__all__ = [
    "ChainClient",
    "GasPrice",
    "TransactionBuilder",
    "WalletProvider",
    "RpcWalletProvider",
    "NameResolver",
    "EnsNameResolver",
    "ChainError",
    "RPCError",
    "CallReverted",
    "UserRejected",
    "InsufficientFunds",
    "NameResolutionError",
    "NonceTooLow",
    "ReplacementUnderpriced",
]
