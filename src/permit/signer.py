"""
ERC-20 permit signing (EIP-2612 amount permits and DAI-style allowed permits).

``ERC20Permit.evaluate`` derives the permit state for the current context;
captured signatures live in a ``SignatureCache`` owned by the caller's
session and are reused only while the context still matches exactly.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum, IntEnum, auto
from typing import Awaitable, Callable, Optional

from chain.abi import decode_uint, encode_call, hex_to_bytes
from chain.errors import CallReverted
from chain.provider import WalletProvider
from core.base_types import Address, TokenAmount, TransactionRequest, bips_to_fraction
from core.result import Invalid, Pending, Ready, Result, combine, from_optional
from core.tokens import DAI, UNI, USDC_MAINNET
from pricing.trade import Trade
from swap.call_builder import V3_ROUTER_ADDRESSES

logger = logging.getLogger(__name__)

# 20 minutes to submit after signing
PERMIT_VALIDITY_BUFFER = 20 * 60

ARGENT_WALLET_DETECTOR_ADDRESS = Address("0xeca4B0bDBf7c55E9b7925919d03CbF8Dc82537E8")


class PermitType(IntEnum):
    AMOUNT = 1
    ALLOWED = 2


@dataclass(frozen=True)
class PermitInfo:
    type: PermitType
    name: str
    # omitted from the domain when None
    version: Optional[str] = None


PERMITTABLE_TOKENS: dict[int, dict[Address, PermitInfo]] = {
    1: {
        USDC_MAINNET.address: PermitInfo(PermitType.AMOUNT, "USD Coin", "2"),
        DAI.address: PermitInfo(PermitType.ALLOWED, "Dai Stablecoin", "1"),
        UNI[1].address: PermitInfo(PermitType.AMOUNT, "Uniswap"),
    },
    4: {
        Address("0xc7AD46e0b8a400Bb3C915120d284AafbA8fc4735"): PermitInfo(
            PermitType.ALLOWED, "Dai Stablecoin", "1"
        ),
        UNI[4].address: PermitInfo(PermitType.AMOUNT, "Uniswap"),
    },
    3: {
        UNI[3].address: PermitInfo(PermitType.AMOUNT, "Uniswap"),
        Address("0x07865c6E87B9F70255377e024ace6630C1Eaa37F"): PermitInfo(
            PermitType.AMOUNT, "USD Coin", "2"
        ),
    },
    5: {
        UNI[5].address: PermitInfo(PermitType.AMOUNT, "Uniswap"),
    },
    42: {
        UNI[42].address: PermitInfo(PermitType.AMOUNT, "Uniswap"),
    },
}

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

EIP712_DOMAIN_TYPE_NO_VERSION = [
    {"name": "name", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

EIP2612_TYPE = [
    {"name": "owner", "type": "address"},
    {"name": "spender", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "deadline", "type": "uint256"},
]

PERMIT_ALLOWED_TYPE = [
    {"name": "holder", "type": "address"},
    {"name": "spender", "type": "address"},
    {"name": "nonce", "type": "uint256"},
    {"name": "expiry", "type": "uint256"},
    {"name": "allowed", "type": "bool"},
]


class PermitState(Enum):
    NOT_APPLICABLE = auto()
    LOADING = auto()
    NOT_SIGNED = auto()
    SIGNED = auto()


@dataclass(frozen=True)
class SignatureData:
    v: int
    r: str
    s: str
    deadline: int
    nonce: int
    owner: Address
    spender: Address
    chain_id: int
    token_address: Address
    permit_type: PermitType
    amount: Optional[int] = None
    allowed: bool = False


class SignatureCache:
    """Most recent signature per (chain, owner, token, spender)."""

    def __init__(self) -> None:
        self._entries: dict[tuple[int, Address, Address, Address], SignatureData] = {}

    def get(
        self, chain_id: int, owner: Address, token: Address, spender: Address
    ) -> Optional[SignatureData]:
        return self._entries.get((chain_id, owner, token, spender))

    def put(self, data: SignatureData) -> None:
        self._entries[(data.chain_id, data.owner, data.token_address, data.spender)] = data

    def __len__(self) -> int:
        return len(self._entries)


def split_signature(signature: "str | bytes") -> tuple[int, str, str]:
    """(v, r, s) from a 65-byte signature; ``v`` is normalized to 27/28."""
    raw = hex_to_bytes(signature)
    if len(raw) != 65:
        raise ValueError(f"invalid signature length {len(raw)}")
    r = "0x" + raw[0:32].hex()
    s = "0x" + raw[32:64].hex()
    v = raw[64]
    if v < 27:
        v += 27
    return v, r, s


async def is_argent_wallet(provider: WalletProvider, account: Optional[Address]) -> bool:
    """Argent smart wallets cannot sign permits; the detector only exists on mainnet."""
    if account is None or provider.chain_id != 1:
        return False
    tx = TransactionRequest(
        to=ARGENT_WALLET_DETECTOR_ADDRESS,
        data=encode_call("isArgentWallet(address)", ["address"], [account.checksum]),
    )
    try:
        raw = await provider.call(tx)
    except CallReverted as exc:
        logger.debug("argent detector reverted for %s: %s", account, exc)
        return False
    return bool(raw) and decode_uint(raw) == 1


async def fetch_nonce(
    provider: WalletProvider, token: Address, owner: Optional[Address]
) -> Result[int]:
    """Current permit nonce of ``owner``; Invalid when the token has no ``nonces``."""
    if owner is None:
        return Invalid("no account")
    tx = TransactionRequest(
        to=token, data=encode_call("nonces(address)", ["address"], [owner.checksum])
    )
    try:
        raw = await provider.call(tx)
    except CallReverted as exc:
        logger.debug("nonces() reverted on %s: %s", token, exc)
        return Invalid("token does not implement nonces")
    if len(raw) < 32:
        return Invalid("token does not implement nonces")
    return Ready(decode_uint(raw))


@dataclass(frozen=True)
class PermitContext:
    """Everything the permit state depends on at one moment."""

    account: Optional[Address]
    chain_id: Optional[int]
    amount: Optional[TokenAmount]
    spender: Optional[Address]
    transaction_deadline: Optional[int]
    nonce: Result[int]
    is_argent_wallet: bool = False
    override: Optional[PermitInfo] = None


GatherSignature = Callable[[], Awaitable[SignatureData]]


@dataclass(frozen=True)
class PermitResult:
    state: PermitState
    signature_data: Optional[SignatureData] = None
    gather_permit_signature: Optional[GatherSignature] = None


NOT_APPLICABLE = PermitResult(PermitState.NOT_APPLICABLE)


def permit_info_for(chain_id: Optional[int], token: Optional[Address]) -> Optional[PermitInfo]:
    if not chain_id or token is None:
        return None
    return PERMITTABLE_TOKENS.get(chain_id, {}).get(token)


def build_permit_payload(
    info: PermitInfo,
    chain_id: int,
    token: Address,
    owner: Address,
    spender: Address,
    nonce: int,
    deadline: int,
    value: int,
) -> dict:
    """EIP-712 payload for ``eth_signTypedData_v4``."""
    allowed = info.type == PermitType.ALLOWED
    if allowed:
        message = {
            "holder": owner.checksum,
            "spender": spender.checksum,
            "allowed": True,
            "nonce": nonce,
            "expiry": deadline,
        }
    else:
        message = {
            "owner": owner.checksum,
            "spender": spender.checksum,
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        }
    domain: dict[str, object] = {"name": info.name}
    if info.version:
        domain["version"] = info.version
    domain["chainId"] = chain_id
    domain["verifyingContract"] = token.checksum
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN_TYPE if info.version else EIP712_DOMAIN_TYPE_NO_VERSION,
            "Permit": PERMIT_ALLOWED_TYPE if allowed else EIP2612_TYPE,
        },
        "domain": domain,
        "primaryType": "Permit",
        "message": message,
    }


def signature_matches(
    data: Optional[SignatureData],
    chain_id: int,
    owner: Address,
    token: Address,
    spender: Address,
    nonce: int,
    transaction_deadline: int,
    amount: int,
) -> bool:
    if data is None:
        return False
    return (
        data.chain_id == chain_id
        and data.owner == owner
        and data.deadline >= transaction_deadline
        and data.token_address == token
        and data.nonce == nonce
        and data.spender == spender
        and (data.allowed or data.amount == amount)
    )


class ERC20Permit:
    """Permit state machine over a wallet provider and a session signature cache."""

    def __init__(self, provider: Optional[WalletProvider], cache: SignatureCache):
        self._provider = provider
        self._cache = cache

    def evaluate(self, context: PermitContext) -> PermitResult:
        if context.is_argent_wallet:
            return NOT_APPLICABLE
        amount = context.amount
        token = amount.currency.address if amount is not None and amount.currency.is_token else None
        ready = combine(
            from_optional(self._provider, "no provider"),
            from_optional(amount, "no amount"),
            from_optional(token, "not a token"),
            from_optional(context.account, "no account"),
            from_optional(context.chain_id or None, "no chain"),
            from_optional(context.transaction_deadline, "no deadline"),
            from_optional(context.spender, "no spender"),
            from_optional(context.override or permit_info_for(context.chain_id, token), "not permittable"),
            context.nonce,
        )
        if isinstance(ready, Invalid):
            return NOT_APPLICABLE
        if isinstance(ready, Pending):
            return PermitResult(PermitState.LOADING)
        provider, amount, token, account, chain_id, transaction_deadline, spender, info, nonce = ready.value

        cached = self._cache.get(chain_id, account, token, spender)
        valid = signature_matches(
            cached, chain_id, account, token, spender, nonce, transaction_deadline, amount.raw
        )

        async def gather_permit_signature() -> SignatureData:
            signature_deadline = transaction_deadline + PERMIT_VALIDITY_BUFFER
            payload = build_permit_payload(
                info, chain_id, token, account, spender, nonce, signature_deadline, amount.raw
            )
            raw_signature = await provider.sign_typed_data(account, json.dumps(payload))
            v, r, s = split_signature(raw_signature)
            allowed = info.type == PermitType.ALLOWED
            data = SignatureData(
                v=v,
                r=r,
                s=s,
                deadline=signature_deadline,
                nonce=nonce,
                owner=account,
                spender=spender,
                chain_id=chain_id,
                token_address=token,
                permit_type=info.type,
                amount=None if allowed else amount.raw,
                allowed=allowed,
            )
            self._cache.put(data)
            logger.info("captured %s permit for %s on %s", info.type.name, spender, token)
            return data

        return PermitResult(
            PermitState.SIGNED if valid else PermitState.NOT_SIGNED,
            signature_data=cached if valid else None,
            gather_permit_signature=gather_permit_signature,
        )


def amount_to_approve_from_trade(trade: Optional[Trade], allowed_slippage_bips: int) -> Optional[TokenAmount]:
    if trade is None:
        return None
    return trade.maximum_amount_in(bips_to_fraction(allowed_slippage_bips))


def permit_spender_for(trade: Optional[Trade], chain_id: Optional[int]) -> Optional[Address]:
    """The router that will pull the input token; the v2 router takes no permits."""
    if trade is None or not chain_id:
        return None
    if {route.protocol for route in trade.routes} != {"v3"}:
        return None
    return V3_ROUTER_ADDRESSES.get(chain_id)
