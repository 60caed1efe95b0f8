"""Helpers for validating EVM addresses."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from eth_utils import is_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@lru_cache(maxsize=1024)
def is_valid_address(address: Optional[str]) -> bool:
    """Accept all-lowercase/uppercase hex addresses or correctly checksummed ones."""

    if not address or not isinstance(address, str):
        return False
    return is_address(address)


def is_zero_address(address: Optional[str]) -> bool:
    if not address:
        return False
    return address.lower() == ZERO_ADDRESS


__all__ = [
    "ZERO_ADDRESS",
    "is_valid_address",
    "is_zero_address",
]
