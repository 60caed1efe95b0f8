"""Service layer helpers"""

from .address import ZERO_ADDRESS, is_valid_address, is_zero_address

__all__ = [
    "ZERO_ADDRESS",
    "is_valid_address",
    "is_zero_address",
]
