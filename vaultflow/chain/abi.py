"""
Minimal ABI encoding for the three contract calls a vault deposit needs.

Only static arguments (``address``, ``uint256``) are involved, so each call is
the 4-byte selector followed by 32-byte big-endian words.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Union

ERC20_APPROVE_SELECTOR = "0x095ea7b3"  # approve(address,uint256)
ERC20_ALLOWANCE_SELECTOR = "0xdd62ed3e"  # allowance(address,address)
ERC4626_DEPOSIT_SELECTOR = "0x6e553f65"  # deposit(uint256,address)

MAX_UINT256 = 2**256 - 1

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_address(value: object) -> bool:
    """True for a 0x-prefixed, 20-byte hex address (checksum is not verified)."""
    return isinstance(value, str) and bool(_ADDRESS_RE.match(value))


def _encode_address(address: str) -> str:
    if not is_address(address):
        raise ValueError(f"Malformed address: {address!r}")
    return address[2:].lower().zfill(64)


def _encode_uint256(value: int) -> str:
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"uint256 out of range: {value}")
    return format(value, "064x")


def encode_approve(spender: str, amount: int) -> str:
    return ERC20_APPROVE_SELECTOR + _encode_address(spender) + _encode_uint256(amount)


def encode_allowance(owner: str, spender: str) -> str:
    return ERC20_ALLOWANCE_SELECTOR + _encode_address(owner) + _encode_address(spender)


def encode_deposit(assets: int, receiver: str) -> str:
    return ERC4626_DEPOSIT_SELECTOR + _encode_uint256(assets) + _encode_address(receiver)


def decode_uint256(data: str) -> int:
    """Decode a single ``uint256`` return value (``"0x…"`` hex)."""
    if not isinstance(data, str) or not data.startswith("0x") or len(data) <= 2:
        raise ValueError(f"Not an ABI-encoded uint256: {data!r}")
    return int(data, 16)


def to_base_units(amount: Union[str, Decimal], decimals: int) -> int:
    """
    Convert a user-facing decimal amount to integer token base units.

    ``"100.5"`` with 6 decimals → ``100500000``.  Amounts that are not
    positive, or carry more fractional digits than the token supports, raise
    ``ValueError``: silently rounding a deposit would make the ledger
    disagree with the chain.
    """
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Amount is not a decimal number: {amount!r}")

    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be a positive decimal, got {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"Amount {amount} has more than {decimals} decimal places"
        )
    return int(scaled)
