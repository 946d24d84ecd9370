"""ABI helpers: call encoding, packed paths and revert reason decoding."""

from __future__ import annotations

from typing import Any, Optional

from eth_abi import decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_abi.packed import encode_packed
from eth_utils.crypto import keccak

ERROR_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
PANIC_SELECTOR = bytes.fromhex("4e487b71")  # Panic(uint256)


def function_selector(signature: str) -> bytes:
    return keccak(text=signature)[:4]


def encode_call(signature: str, arg_types: list[str], args: list[Any]) -> bytes:
    """Selector of ``signature`` followed by the ABI-encoded arguments."""
    return function_selector(signature) + abi_encode(arg_types, args)


def encode_path(addresses: list[str], fees: list[int]) -> bytes:
    """Packed v3 path: token (20) | fee (3) | token (20) | ..."""
    if len(addresses) != len(fees) + 1:
        raise ValueError("path needs exactly one more address than fees")
    types: list[str] = []
    values: list[Any] = []
    for idx, fee in enumerate(fees):
        types.extend(["address", "uint24"])
        values.extend([addresses[idx], fee])
    types.append("address")
    values.append(addresses[-1])
    return encode_packed(types, values)


def decode_uint(raw: bytes) -> int:
    (value,) = decode(["uint256"], raw[:32])
    return int(value)


def hex_to_bytes(value: object) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        return b""
    normalized = value[2:] if value.startswith("0x") else value
    if normalized == "":
        return b""
    return bytes.fromhex(normalized)


def decode_revert_reason(data: object) -> Optional[str]:
    """Extract the human-readable reason from revert data, if present."""
    try:
        raw = hex_to_bytes(data)
    except ValueError:
        return None
    if len(raw) < 4:
        return None
    selector, payload = raw[:4], raw[4:]
    try:
        if selector == ERROR_SELECTOR:
            (reason,) = decode(["string"], payload)
            return str(reason)
        if selector == PANIC_SELECTOR:
            (code,) = decode(["uint256"], payload)
            return f"panic code {hex(code)}"
    except DecodingError:
        return None
    return None
