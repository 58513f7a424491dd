"""Constants for the aidflow SDK.

This module defines the constant values used across the SDK,
including ABI encoding constants, gas parameters, confirmation
timeouts and the default handshake amounts.
"""

# ABI Encoding Constants
ABI_SELECTOR_LENGTH = 4
ABI_WORD_LENGTH = 32
REVERT_SELECTOR = "0x08c379a0"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Gas Constants
DEFAULT_GAS_LIMIT = 450_000
DEFAULT_HANDLE_OPS_GAS_LIMIT = 2_000_000
GAS_ESTIMATION_BUFFER = 1.15
MAX_GAS_LIMIT = 5_000_000  # outer handleOps carries account deployment

# Nonce channel used by every operation (EntryPoint 2D nonce key)
DEFAULT_NONCE_KEY = 0

# Amount Validation Constants
MAX_SAFE_AMOUNT = 2**255 - 1
TOKEN_DECIMALS = 18

# Network Constants
PROVIDER_TIMEOUT_SECONDS = 30
DEFAULT_CONFIRMATION_TIMEOUT_SECONDS = 60
RECEIPT_POLL_LATENCY_SECONDS = 0.5

# Sponsor signature validity window (relative to signing time)
SPONSOR_VALID_AFTER_SKEW_SECONDS = 60
SPONSOR_VALIDITY_SECONDS = 3600
MAX_UINT48 = 2**48 - 1

# Simple flow amounts (whole tokens)
SIMPLE_FLOW_MINT = 10_000
SIMPLE_FLOW_TRANSFER = 5_000
SIMPLE_FLOW_ASSIGN = 2_000
SIMPLE_FLOW_CASH_OUT = 1_000

# Mutual handshake flow amounts (whole tokens)
HANDSHAKE_FLOW_MINT = 1_000
HANDSHAKE_FLOW_ASSIGN = 500
HANDSHAKE_FLOW_CASH_OUT = 300

# Token symbols used as ledger keys
SOURCE_TOKEN_SYMBOL = "RAHAT"
DESTINATION_TOKEN_SYMBOL = "CASH"

ARTIFACT_VERSION = "1.0.0"
ARTIFACT_GENERATOR = "aidflow"

__all__ = [
    "ABI_SELECTOR_LENGTH",
    "ABI_WORD_LENGTH",
    "REVERT_SELECTOR",
    "ZERO_ADDRESS",
    "DEFAULT_GAS_LIMIT",
    "DEFAULT_HANDLE_OPS_GAS_LIMIT",
    "GAS_ESTIMATION_BUFFER",
    "MAX_GAS_LIMIT",
    "DEFAULT_NONCE_KEY",
    "MAX_SAFE_AMOUNT",
    "TOKEN_DECIMALS",
    "PROVIDER_TIMEOUT_SECONDS",
    "DEFAULT_CONFIRMATION_TIMEOUT_SECONDS",
    "RECEIPT_POLL_LATENCY_SECONDS",
    "SPONSOR_VALID_AFTER_SKEW_SECONDS",
    "SPONSOR_VALIDITY_SECONDS",
    "MAX_UINT48",
    # Flow amounts
    "SIMPLE_FLOW_MINT",
    "SIMPLE_FLOW_TRANSFER",
    "SIMPLE_FLOW_ASSIGN",
    "SIMPLE_FLOW_CASH_OUT",
    "HANDSHAKE_FLOW_MINT",
    "HANDSHAKE_FLOW_ASSIGN",
    "HANDSHAKE_FLOW_CASH_OUT",
    "SOURCE_TOKEN_SYMBOL",
    "DESTINATION_TOKEN_SYMBOL",
    "ARTIFACT_VERSION",
    "ARTIFACT_GENERATOR",
]
