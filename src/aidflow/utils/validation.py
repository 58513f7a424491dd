"""
Validation utilities for the aidflow SDK.

Provides input validation functions for:
- Ethereum addresses
- Token amounts (wei) and whole-unit conversion
- Private keys

All validation functions raise ValidationError on failure.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from aidflow.constants import MAX_SAFE_AMOUNT, TOKEN_DECIMALS, ZERO_ADDRESS
from aidflow.errors import ValidationError


def validate_address(address: str, field_name: str = "address", allow_zero: bool = False) -> str:
    """
    Validate Ethereum address format.

    Args:
        address: Address to validate (0x-prefixed hex string)
        field_name: Field name for error messages
        allow_zero: Whether the zero address is acceptable

    Returns:
        Checksummed address

    Raises:
        ValidationError: If address is malformed (or zero when not allowed)
    """
    if not address or not isinstance(address, str):
        raise ValidationError(f"{field_name} is required")
    if not Web3.is_address(address):
        raise ValidationError(
            f"{field_name} must be a valid Ethereum address",
            details={"field": field_name, "value": address},
        )
    checksummed = Web3.to_checksum_address(address)
    if not allow_zero and checksummed == ZERO_ADDRESS:
        raise ValidationError(f"{field_name} cannot be the zero address")
    return checksummed


def validate_amount(amount: int, field_name: str = "amount") -> int:
    """
    Validate amount is non-negative and within safe bounds.

    Args:
        amount: Amount in wei
        field_name: Field name for error messages

    Returns:
        The validated amount

    Raises:
        ValidationError: If amount is negative or exceeds maximum safe amount
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"{field_name} must be an integer amount in wei")
    if amount < 0:
        raise ValidationError(f"{field_name} must be non-negative")
    if amount > MAX_SAFE_AMOUNT:
        raise ValidationError(f"{field_name} exceeds maximum safe amount")
    return amount


def to_token_units(amount: Union[int, str, Decimal], decimals: int = TOKEN_DECIMALS) -> int:
    """
    Convert a whole-token amount to base units.

    Args:
        amount: Amount in whole tokens (e.g., 10000 or "0.5")
        decimals: Token decimals (default 18)

    Returns:
        Amount in base units

    Raises:
        ValidationError: If the amount is not a number or has too many decimals
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValidationError(f"invalid token amount: {amount!r}") from None
    scaled = value * (Decimal(10) ** decimals)
    if scaled != scaled.to_integral_value():
        raise ValidationError(f"token amount {amount} has more than {decimals} decimals")
    return validate_amount(int(scaled))


def from_token_units(amount: int, decimals: int = TOKEN_DECIMALS) -> str:
    """Format base units as a whole-token decimal string."""
    value = Decimal(amount) / (Decimal(10) ** decimals)
    return format(value.normalize(), "f")


def load_account(private_key: str) -> LocalAccount:
    """
    Build a local signing account from a private key.

    Raises:
        ValidationError: If the key is malformed (the key is never echoed)
    """
    # Sanitize private key errors to prevent key leakage in stack traces
    try:
        return Account.from_key(private_key)
    except Exception:
        raise ValidationError("Invalid private key format (key not shown for security)") from None


__all__ = [
    "validate_address",
    "validate_amount",
    "to_token_units",
    "from_token_units",
    "load_account",
]
