"""
aidflow SDK Utilities.

This module provides utility functions shared across the SDK.
"""

from aidflow.utils.logging import configure_logging, get_logger
from aidflow.utils.validation import (
    from_token_units,
    to_token_units,
    validate_address,
    validate_amount,
)

__all__ = [
    # Structured logging
    "get_logger",
    "configure_logging",
    # Validation
    "validate_address",
    "validate_amount",
    "to_token_units",
    "from_token_units",
]
