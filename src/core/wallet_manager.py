"""Local key holder: signs swap transactions and EIP-712 permit payloads."""

from __future__ import annotations

import json
import os
from typing import Any

from eth_account import Account
from eth_account.datastructures import SignedMessage, SignedTransaction
from eth_account.messages import encode_typed_data
from eth_utils.address import to_checksum_address


def _mask_private_key(private_key: Any) -> str:
    if isinstance(private_key, (bytes, bytearray)):
        raw = private_key.hex()
    else:
        raw = str(private_key)

    if raw.startswith("0x"):
        raw = raw[2:]

    if len(raw) < 10:
        return "<redacted>"

    return f"0x{raw[:6]}...{raw[-4:]}"


def _validate_typed_payload(payload: dict) -> None:
    for key in ("types", "domain", "primaryType", "message"):
        if key not in payload:
            raise ValueError(f"typed data payload is missing {key!r}")
    types = payload["types"]
    if not isinstance(types, dict) or not types:
        raise TypeError("types must be a non-empty dict")
    if payload["primaryType"] not in types:
        raise ValueError("primaryType must be declared in types")
    for type_name, fields in types.items():
        if not isinstance(fields, list) or not fields:
            raise TypeError(f"type {type_name!r} must list its fields")
        for field in fields:
            if not isinstance(field, dict) or "name" not in field or "type" not in field:
                raise TypeError("each field must include name and type")


class WalletManager:
    """
    Holds the signing key for the connected account.

    CRITICAL: Private key must never appear in logs, errors, or string
    representations.
    """

    def __init__(self, private_key: str | bytes) -> None:
        try:
            self._account = Account.from_key(private_key)
        except Exception as exc:  # pragma: no cover - defensive
            masked = _mask_private_key(private_key)
            raise ValueError(f"Invalid private key: {masked}") from exc

    @classmethod
    def from_env(cls, env_var: str = "PRIVATE_KEY") -> "WalletManager":
        """Load private key from environment variable."""
        value = os.environ.get(env_var)
        if not value:
            raise ValueError(f"Environment variable {env_var} is not set")
        return cls(value)

    @property
    def address(self) -> str:
        """Returns checksummed address."""
        return to_checksum_address(self._account.address)

    def sign_typed_payload(self, payload: str | dict) -> SignedMessage:
        """
        Sign a full EIP-712 document, as ``eth_signTypedData_v4`` receives it.

        ``payload`` is the JSON string (or already decoded dict) holding
        ``types``, ``domain``, ``primaryType`` and ``message``.
        """
        if isinstance(payload, str):
            payload = json.loads(payload)
        if not isinstance(payload, dict):
            raise TypeError("payload must be a JSON object")
        _validate_typed_payload(payload)
        signable = encode_typed_data(full_message=payload)
        return self._account.sign_message(signable)

    def sign_transaction(self, tx: dict) -> SignedTransaction:
        """Sign a transaction dict."""
        if not isinstance(tx, dict):
            raise TypeError("tx must be a dict")
        if not tx:
            raise ValueError("tx must not be empty")
        return self._account.sign_transaction(tx)

    def __repr__(self) -> str:
        """MUST NOT expose private key."""
        return f"WalletManager(address={self.address})"

    def __str__(self) -> str:
        return self.__repr__()
