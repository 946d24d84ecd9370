"""Recipient resolution: raw addresses pass through, names go through a resolver."""

from __future__ import annotations

import logging
from typing import Optional

from eth_utils.address import is_address

from chain.errors import NameResolutionError
from chain.provider import NameResolver
from core.base_types import Address
from core.result import PENDING, Invalid, Ready, Result

logger = logging.getLogger(__name__)

INVALID_RECIPIENT = "Invalid recipient"


def shorten_address(address: "Address | str", chars: int = 4) -> str:
    """0x1234...abcd style shorthand used in transaction summaries."""
    value = address.checksum if isinstance(address, Address) else Address(address).checksum
    return f"{value[:chars + 2]}...{value[-chars:]}"


class RecipientResolver:
    """
    Turns a user-supplied recipient into an address.

    ``lookup`` never blocks: an unresolved name is Pending until ``resolve``
    has run for it, then Ready or Invalid from the cache.
    """

    def __init__(self, name_resolver: Optional[NameResolver] = None):
        self._name_resolver = name_resolver
        self._cache: dict[str, Optional[Address]] = {}

    def lookup(self, recipient_or_name: str) -> Result[Address]:
        if is_address(recipient_or_name):
            return Ready(Address(recipient_or_name))
        key = recipient_or_name.lower()
        if key not in self._cache:
            if self._name_resolver is None:
                return Invalid(INVALID_RECIPIENT)
            return PENDING
        resolved = self._cache[key]
        if resolved is None:
            return Invalid(INVALID_RECIPIENT)
        return Ready(resolved)

    async def resolve(self, recipient_or_name: str) -> Result[Address]:
        if is_address(recipient_or_name) or self._name_resolver is None:
            return self.lookup(recipient_or_name)
        key = recipient_or_name.lower()
        if key not in self._cache:
            try:
                self._cache[key] = await self._name_resolver.resolve(recipient_or_name)
            except NameResolutionError as exc:
                logger.warning("could not resolve %s: %s", recipient_or_name, exc)
                self._cache[key] = None
        return self.lookup(recipient_or_name)
