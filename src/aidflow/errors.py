"""
Exception hierarchy for the aidflow SDK.

Every error raised by the orchestration layer inherits from AidFlowError,
which carries a machine-readable code, an optional transaction hash and a
details dict so the first failure of a run can be reported and persisted
with enough context for an operator.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "AidFlowError",
    "ConfigurationError",
    "ValidationError",
    "InsufficientBalanceError",
    "InvalidNetworkError",
    "AddressResolutionMismatchError",
    "NonceFetchFailedError",
    "SponsorshipInsufficientError",
    "SponsorNotRegisteredError",
    "SubmissionTimeoutError",
    "TransactionRevertedError",
    "RpcError",
    "LedgerOverdraftError",
    "HandshakeAbortedError",
]


class AidFlowError(Exception):
    """
    Base exception for all aidflow errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code (e.g., "SUBMISSION_TIMEOUT").
        tx_hash: Optional transaction hash related to the error.
        details: Optional dictionary with additional error context.

    Example:
        >>> raise AidFlowError(
        ...     "Operation failed",
        ...     code="TRANSACTION_REVERTED",
        ...     tx_hash="0x123...",
        ...     details={"sender": "0xabc..."}
        ... )
    """

    default_code = "AIDFLOW_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        tx_hash: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.tx_hash = tx_hash
        self.details = details or {}

    def __str__(self) -> str:
        parts = [f"[{self.code}] {self.message}"]
        if self.tx_hash:
            parts.append(f"(tx: {self.tx_hash[:10]}...)")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"tx_hash={self.tx_hash!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to a dictionary for JSON serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "error": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "tx_hash": self.tx_hash,
            "details": self.details,
        }


class ConfigurationError(AidFlowError):
    """Raised when required configuration (key, deployment file) is missing or invalid."""

    default_code = "CONFIGURATION_ERROR"


class ValidationError(AidFlowError):
    """Raised when input validation fails."""

    default_code = "VALIDATION_ERROR"


class InsufficientBalanceError(AidFlowError):
    """
    Raised when the submitting key holds less than the network profile minimum.

    Checked before any operation is built.
    """

    default_code = "INSUFFICIENT_BALANCE"

    def __init__(self, address: str, balance: int, required: int) -> None:
        self.address = address
        self.balance = balance
        self.required = required
        super().__init__(
            f"Balance of {address} is {balance} wei, at least {required} wei required",
            details={"address": address, "balance": balance, "required": required},
        )


class InvalidNetworkError(AidFlowError):
    """Raised for an unknown chain id when profile resolution runs in strict mode."""

    default_code = "INVALID_NETWORK"

    def __init__(self, chain_id: int) -> None:
        self.chain_id = chain_id
        super().__init__(
            f"No network profile for chain id {chain_id}",
            details={"chain_id": chain_id},
        )


class AddressResolutionMismatchError(AidFlowError):
    """Raised when the factory-computed address differs from the cached account address."""

    default_code = "ADDRESS_RESOLUTION_MISMATCH"

    def __init__(self, expected: str, actual: str, owner: str, salt: int) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Factory resolves ({owner}, {salt}) to {actual}, account record holds {expected}",
            details={"expected": expected, "actual": actual, "owner": owner, "salt": salt},
        )


class NonceFetchFailedError(AidFlowError):
    """Raised when the sender nonce cannot be read or is behind the locally confirmed nonce."""

    default_code = "NONCE_FETCH_FAILED"


class SponsorshipInsufficientError(AidFlowError):
    """Raised when the sponsor deposit cannot cover an operation's worst-case cost."""

    default_code = "SPONSORSHIP_INSUFFICIENT"

    def __init__(self, sponsor: str, deposit: int, required: int) -> None:
        self.sponsor = sponsor
        self.deposit = deposit
        self.required = required
        super().__init__(
            f"Sponsor {sponsor} deposit {deposit} wei is below worst-case cost {required} wei",
            details={"sponsor": sponsor, "deposit": deposit, "required": required},
        )


class SponsorNotRegisteredError(AidFlowError):
    """Raised when an operation's sender was never registered for sponsorship."""

    default_code = "SPONSOR_NOT_REGISTERED"

    def __init__(self, sender: str) -> None:
        self.sender = sender
        super().__init__(
            f"Sender {sender} is not registered for sponsorship",
            details={"sender": sender},
        )


class SubmissionTimeoutError(AidFlowError):
    """Raised when a submitted transaction is not confirmed within the timeout."""

    default_code = "SUBMISSION_TIMEOUT"


class TransactionRevertedError(AidFlowError):
    """Raised when a transaction or operation was confirmed but did not succeed."""

    default_code = "TRANSACTION_REVERTED"


class RpcError(AidFlowError):
    """Raised when an RPC/provider request fails."""

    default_code = "RPC_ERROR"


class LedgerOverdraftError(ValidationError):
    """Raised when a step would move more than an account holds in the running ledger."""

    default_code = "LEDGER_OVERDRAFT"

    def __init__(self, account: str, token: str, balance: int, amount: int) -> None:
        self.account = account
        self.token = token
        self.balance = balance
        self.amount = amount
        super().__init__(
            f"{account} cannot move {amount} {token}, running balance is {balance}",
            details={"account": account, "token": token, "balance": balance, "amount": amount},
        )


class HandshakeAbortedError(AidFlowError):
    """
    Raised when a handshake step fails and the flow halts.

    The original error is available as ``__cause__``; already recorded steps
    remain final.
    """

    default_code = "HANDSHAKE_ABORTED"

    def __init__(
        self,
        step_id: int,
        action: str,
        sender: Optional[str],
        target: Optional[str],
        cause: Exception,
    ) -> None:
        self.step_id = step_id
        self.action = action
        self.sender = sender
        self.target = target
        cause_code = getattr(cause, "code", type(cause).__name__)
        super().__init__(
            f"Step {step_id} ({action}) failed: {cause}",
            tx_hash=getattr(cause, "tx_hash", None),
            details={
                "step_id": step_id,
                "action": action,
                "sender": sender,
                "target": target,
                "cause": cause_code,
            },
        )
