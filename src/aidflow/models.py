"""Data model for abstracted operations and handshake runs."""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from eth_account.signers.local import LocalAccount

__all__ = [
    "UserOperation",
    "AccountRecord",
    "RoleBinding",
    "GasFromEvent",
    "GasEstimated",
    "GasFigures",
    "OperationResult",
    "AdminTxResult",
    "StepKind",
    "HandshakeStep",
]


@dataclass(frozen=True)
class UserOperation:
    """Abstracted operation envelope (ERC-4337 v0.6 layout).

    Byte fields are raw ``bytes``; an empty ``init_code`` means the sender is
    already deployed. ``signature`` stays empty until the signer attaches one.
    """
    sender: str
    nonce: int
    init_code: bytes
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    @property
    def deploys_account(self) -> bool:
        return len(self.init_code) > 0

    @property
    def total_gas_limit(self) -> int:
        return self.call_gas_limit + self.verification_gas_limit + self.pre_verification_gas

    def with_signature(self, signature: bytes) -> "UserOperation":
        return replace(self, signature=bytes(signature))

    def with_paymaster_and_data(self, paymaster_and_data: bytes) -> "UserOperation":
        return replace(self, paymaster_and_data=bytes(paymaster_and_data))

    def to_abi_tuple(self) -> Tuple[Any, ...]:
        return (
            self.sender,
            self.nonce,
            self.init_code,
            self.call_data,
            self.call_gas_limit,
            self.verification_gas_limit,
            self.pre_verification_gas,
            self.max_fee_per_gas,
            self.max_priority_fee_per_gas,
            self.paymaster_and_data,
            self.signature,
        )


@dataclass
class AccountRecord:
    """A smart account, deployed or counterfactual.

    ``deployed`` is refreshed from chain state before each operation that
    targets the account and flips from False to True exactly once.
    """
    owner: str
    salt: int
    address: str
    deployed: bool = False

    def mark_deployed(self) -> None:
        self.deployed = True


@dataclass(frozen=True)
class RoleBinding:
    """Role name bound to its owning key and account record."""
    role: str
    owner_key: LocalAccount = field(repr=False, compare=False)
    account: AccountRecord

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def owner(self) -> str:
        return self.account.owner


@dataclass(frozen=True)
class GasFromEvent:
    """Gas figures read from the entry point's execution-result event (authoritative)."""
    gas_used: int
    gas_cost: int
    authoritative: bool = field(default=True, init=False)


@dataclass(frozen=True)
class GasEstimated:
    """Gas figures approximated from the outer transaction receipt."""
    gas_used: int
    gas_cost: int
    authoritative: bool = field(default=False, init=False)


GasFigures = Union[GasFromEvent, GasEstimated]


@dataclass(frozen=True)
class OperationResult:
    """Outcome of one confirmed abstracted operation."""
    tx_hash: str
    user_op_hash: str
    sender: str
    nonce: int
    gas: GasFigures
    sponsor_balance_delta: int
    sender_deployed: bool
    success: bool
    revert_reason: Optional[str] = None

    @property
    def gas_used(self) -> int:
        return self.gas.gas_used

    @property
    def gas_cost(self) -> int:
        return self.gas.gas_cost

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["gas"] = {
            "source": "event" if self.gas.authoritative else "estimated",
            "gas_used": self.gas.gas_used,
            "gas_cost": self.gas.gas_cost,
        }
        return data


@dataclass(frozen=True)
class AdminTxResult:
    """Outcome of a plain transaction sent by the administrative key."""
    tx_hash: str
    gas_used: int
    gas_cost: int
    success: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StepKind(str, Enum):
    MINT = "mint"
    TRANSFER = "transfer"
    APPROVE = "approve"
    ASSIGN = "assign"
    TRANSFER_FROM = "transfer_from"
    CASH_OUT = "cash_out"


@dataclass(frozen=True)
class HandshakeStep:
    """One recorded step of a handshake flow; never mutated after creation.

    For ``TRANSFER_FROM`` the source role is the owner the tokens are pulled
    from and the destination role receives them. ``CASH_OUT`` converts
    ``token`` held by the source role into ``token_out`` for the same role.
    """
    step_id: int
    action: str
    kind: StepKind
    source_role: str
    destination_role: str
    token: str
    amount: int
    result: Union[OperationResult, AdminTxResult]
    token_out: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def sponsored(self) -> bool:
        return isinstance(self.result, OperationResult)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "action": self.action,
            "kind": self.kind.value,
            "source_role": self.source_role,
            "destination_role": self.destination_role,
            "token": self.token,
            "token_out": self.token_out,
            "amount": str(self.amount),
            "sponsored": self.sponsored,
            "result": self.result.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }
