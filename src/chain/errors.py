"""Chain-specific exceptions for RPC, call and provider failures."""

from __future__ import annotations

from typing import Optional

# EIP-1193 code a wallet returns when the user declines a request.
USER_REJECTED_CODE = 4001


class ChainError(Exception):
    """Base class for chain errors."""


class RPCError(ChainError):
    """RPC request failed."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Optional[object] = None,
    ):
        self.code = code
        self.data = data
        super().__init__(message)


class CallReverted(RPCError):
    """eth_call or eth_estimateGas reverted; ``reason`` is the decoded string."""

    def __init__(
        self,
        message: str,
        reason: Optional[str] = None,
        code: Optional[int] = None,
        data: Optional[object] = None,
    ):
        self.reason = reason
        super().__init__(message, code=code, data=data)


class UserRejected(RPCError):
    """The wallet owner declined to sign or send."""

    def __init__(self, message: str = "User rejected the request"):
        super().__init__(message, code=USER_REJECTED_CODE)


class InsufficientFunds(ChainError):
    """Not enough balance for transaction."""


class NonceTooLow(ChainError):
    """Nonce already used."""


class ReplacementUnderpriced(ChainError):
    """Replacement transaction gas too low."""


class NameResolutionError(ChainError):
    """ENS name did not resolve to an address."""
