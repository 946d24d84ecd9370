"""Swap submission failures surfaced to the caller."""


class SwapError(Exception):
    """Base class for swap failures."""


class EstimationFailed(SwapError):
    """No candidate call could be estimated; the message is user-facing."""


class TransactionRejected(SwapError):
    """The user declined the transaction in their wallet."""

    def __init__(self, message: str = "Transaction rejected."):
        super().__init__(message)


class SwapFailed(SwapError):
    """The provider refused the transaction for any other reason."""


class UnsupportedTrade(ValueError):
    """The trade cannot be encoded for any known router."""
