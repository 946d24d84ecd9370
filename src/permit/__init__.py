from .signer import (
    PERMIT_VALIDITY_BUFFER,
    PERMITTABLE_TOKENS,
    ERC20Permit,
    PermitContext,
    PermitInfo,
    PermitResult,
    PermitState,
    PermitType,
    SignatureCache,
    SignatureData,
    amount_to_approve_from_trade,
    fetch_nonce,
    is_argent_wallet,
    permit_spender_for,
    split_signature,
)

__all__ = [
    "PERMIT_VALIDITY_BUFFER",
    "PERMITTABLE_TOKENS",
    "ERC20Permit",
    "PermitContext",
    "PermitInfo",
    "PermitResult",
    "PermitState",
    "PermitType",
    "SignatureCache",
    "SignatureData",
    "amount_to_approve_from_trade",
    "fetch_nonce",
    "is_argent_wallet",
    "permit_spender_for",
    "split_signature",
]
