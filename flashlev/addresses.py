"""Account address validation.

Addresses are accepted as ``0x`` followed by 40 hex digits. Mixed-case input
must carry a valid EIP-55 checksum; single-case input carries no checksum and
is normalized to checksum form.
"""

from __future__ import annotations

from eth_utils import is_checksum_address, is_hex_address, to_checksum_address

from flashlev.errors import InvalidAddress


def validate_address(value: str, *, label: str = "address") -> str:
    """Validate an address and return its checksum form.

    Raises:
        InvalidAddress: If the value is malformed or fails its checksum.
    """
    if not isinstance(value, str) or not value.startswith("0x") or not is_hex_address(value):
        raise InvalidAddress(f"{label} is not a 20-byte hex address: {value!r}")

    digits = value[2:]
    if digits != digits.lower() and digits != digits.upper():
        if not is_checksum_address(value):
            raise InvalidAddress(f"{label} has an invalid EIP-55 checksum: {value}")
        return value

    return to_checksum_address(value)


def same_address(left: str, right: str) -> bool:
    """Compare two addresses ignoring checksum casing."""
    return left.lower() == right.lower()
