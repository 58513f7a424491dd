"""Typed call schemas for the external contracts.

Each external contract is described by a closed set of ``AbiFunction`` /
``AbiEvent`` definitions and a thin binding class that encodes calls,
performs read-only ``eth_call`` queries and decodes results. Nothing here
loads ABI JSON at runtime; the function signatures below are the whole
interface the orchestration layer depends on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes
from web3 import Web3

from .constants import ABI_SELECTOR_LENGTH
from .errors import ValidationError

if TYPE_CHECKING:
    from .models import UserOperation

__all__ = [
    "AbiFunction",
    "AbiEvent",
    "USER_OPERATION_TUPLE",
    "EntryPoint",
    "AccountFactory",
    "SmartAccount",
    "Paymaster",
    "Token",
    "AidFlowManager",
]

# sender, nonce, initCode, callData, callGasLimit, verificationGasLimit,
# preVerificationGas, maxFeePerGas, maxPriorityFeePerGas, paymasterAndData, signature
USER_OPERATION_TUPLE = (
    "(address,uint256,bytes,bytes,uint256,uint256,uint256,uint256,uint256,bytes,bytes)"
)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        hex_str = value[2:] if value.startswith("0x") else value
        return bytes.fromhex(hex_str)
    raise ValidationError(f"expected bytes or hex string, got {type(value).__name__}")


def _normalize(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return to_checksum_address(value.lower() if isinstance(value, str) else value)
    return value


@dataclass(frozen=True)
class AbiFunction:
    """One contract function: name plus canonical input/output types."""

    name: str
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        return keccak(text=self.signature)[:ABI_SELECTOR_LENGTH]

    def encode(self, *args: Any) -> bytes:
        """Encode a call (selector + ABI-encoded arguments)."""
        if len(args) != len(self.inputs):
            raise ValidationError(
                f"{self.signature} takes {len(self.inputs)} arguments, got {len(args)}"
            )
        return self.selector + encode(list(self.inputs), list(args))

    def decode_input(self, data: Any) -> Tuple[Any, ...]:
        """Decode call data produced by :meth:`encode`."""
        raw = _to_bytes(data)
        if raw[:ABI_SELECTOR_LENGTH] != self.selector:
            raise ValidationError(f"call data is not a {self.signature} call")
        values = decode(list(self.inputs), raw[ABI_SELECTOR_LENGTH:])
        return tuple(_normalize(t, v) for t, v in zip(self.inputs, values))

    def decode_output(self, data: Any) -> Tuple[Any, ...]:
        values = decode(list(self.outputs), _to_bytes(data))
        return tuple(_normalize(t, v) for t, v in zip(self.outputs, values))


@dataclass(frozen=True)
class AbiEvent:
    """One contract event with its indexed and non-indexed fields."""

    name: str
    indexed: Tuple[Tuple[str, str], ...] = ()
    data: Tuple[Tuple[str, str], ...] = ()
    signature_types: Tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.signature_types)})"

    @property
    def topic(self) -> bytes:
        return keccak(text=self.signature)

    def matches(self, log: Dict[str, Any]) -> bool:
        topics = log.get("topics") or []
        return bool(topics) and _to_bytes(topics[0]) == self.topic

    def decode_log(self, log: Dict[str, Any]) -> Dict[str, Any]:
        """Decode a receipt log entry into a field-name -> value dict."""
        topics = [_to_bytes(t) for t in log["topics"]][1:]
        if len(topics) != len(self.indexed):
            raise ValidationError(f"{self.name} log carries {len(topics)} indexed topics")
        args: Dict[str, Any] = {}
        for (field_name, abi_type), topic in zip(self.indexed, topics):
            (value,) = decode([abi_type], topic)
            args[field_name] = _normalize(abi_type, value)
        if self.data:
            types = [t for _, t in self.data]
            values = decode(types, _to_bytes(log.get("data") or b""))
            for (field_name, abi_type), value in zip(self.data, values):
                args[field_name] = _normalize(abi_type, value)
        return args

    def find(self, logs: Iterable[Dict[str, Any]], emitter: Optional[str] = None) -> List[Dict[str, Any]]:
        """Decode every matching log, optionally restricted to one emitting contract."""
        found = []
        for log in logs:
            if not self.matches(log):
                continue
            if emitter is not None and log.get("address") and not _same_address(log["address"], emitter):
                continue
            found.append(self.decode_log(log))
        return found


def _same_address(a: str, b: str) -> bool:
    return a.lower() == b.lower()


class _ContractBinding:
    """Base binding: an address plus read-only call helpers."""

    def __init__(self, w3: Web3, address: str):
        self.w3 = w3
        self.address = to_checksum_address(address)

    def _call(self, fn: AbiFunction, *args: Any) -> Tuple[Any, ...]:
        raw = self.w3.eth.call({"to": self.address, "data": HexBytes(fn.encode(*args))})
        return fn.decode_output(raw)


class EntryPoint(_ContractBinding):
    """Execution entry point (ERC-4337 v0.6 interface)."""

    HANDLE_OPS = AbiFunction("handleOps", (USER_OPERATION_TUPLE + "[]", "address"))
    GET_NONCE = AbiFunction("getNonce", ("address", "uint192"), ("uint256",))
    GET_USER_OP_HASH = AbiFunction("getUserOpHash", (USER_OPERATION_TUPLE,), ("bytes32",))
    BALANCE_OF = AbiFunction("balanceOf", ("address",), ("uint256",))
    DEPOSIT_TO = AbiFunction("depositTo", ("address",))

    USER_OPERATION_EVENT = AbiEvent(
        "UserOperationEvent",
        indexed=(("userOpHash", "bytes32"), ("sender", "address"), ("paymaster", "address")),
        data=(
            ("nonce", "uint256"),
            ("success", "bool"),
            ("actualGasCost", "uint256"),
            ("actualGasUsed", "uint256"),
        ),
        signature_types=("bytes32", "address", "address", "uint256", "bool", "uint256", "uint256"),
    )
    USER_OPERATION_REVERT_REASON = AbiEvent(
        "UserOperationRevertReason",
        indexed=(("userOpHash", "bytes32"), ("sender", "address")),
        data=(("nonce", "uint256"), ("revertReason", "bytes")),
        signature_types=("bytes32", "address", "uint256", "bytes"),
    )

    def get_nonce(self, sender: str, key: int = 0) -> int:
        return self._call(self.GET_NONCE, sender, key)[0]

    def get_user_op_hash(self, op: "UserOperation") -> bytes:
        return bytes(self._call(self.GET_USER_OP_HASH, op.to_abi_tuple())[0])

    def balance_of(self, account: str) -> int:
        return self._call(self.BALANCE_OF, account)[0]

    def encode_handle_ops(self, ops: Sequence["UserOperation"], beneficiary: str) -> bytes:
        return self.HANDLE_OPS.encode([op.to_abi_tuple() for op in ops], beneficiary)

    def encode_deposit_to(self, account: str) -> bytes:
        return self.DEPOSIT_TO.encode(account)


class AccountFactory(_ContractBinding):
    """Counterfactual smart-account factory."""

    GET_ADDRESS = AbiFunction("getAddress", ("address", "uint256"), ("address",))
    CREATE_ACCOUNT = AbiFunction("createAccount", ("address", "uint256"), ("address",))

    def get_address(self, owner: str, salt: int) -> str:
        return self._call(self.GET_ADDRESS, owner, salt)[0]

    def encode_create_account(self, owner: str, salt: int) -> bytes:
        return self.CREATE_ACCOUNT.encode(owner, salt)

    def build_init_code(self, owner: str, salt: int) -> bytes:
        """Creation payload: factory address followed by the createAccount call."""
        return _to_bytes(self.address) + self.encode_create_account(owner, salt)


class SmartAccount:
    """Account contract interface; only the generic dispatcher is needed."""

    EXECUTE = AbiFunction("execute", ("address", "uint256", "bytes"))

    @classmethod
    def encode_execute(cls, target: str, value: int, data: bytes) -> bytes:
        return cls.EXECUTE.encode(target, value, data)


class Paymaster(_ContractBinding):
    """Verifying paymaster with an on-chain sponsored-account allowlist."""

    SPONSOR_ACCOUNT = AbiFunction("sponsorAccount", ("address",))

    def encode_sponsor_account(self, account: str) -> bytes:
        return self.SPONSOR_ACCOUNT.encode(account)


class Token(_ContractBinding):
    """Mintable ERC-20 token."""

    BALANCE_OF = AbiFunction("balanceOf", ("address",), ("uint256",))
    TRANSFER = AbiFunction("transfer", ("address", "uint256"), ("bool",))
    APPROVE = AbiFunction("approve", ("address", "uint256"), ("bool",))
    TRANSFER_FROM = AbiFunction("transferFrom", ("address", "address", "uint256"), ("bool",))
    MINT = AbiFunction("mint", ("address", "uint256"))

    def __init__(self, w3: Web3, address: str, symbol: str):
        super().__init__(w3, address)
        self.symbol = symbol

    def balance_of(self, account: str) -> int:
        return self._call(self.BALANCE_OF, account)[0]

    def encode_transfer(self, to: str, amount: int) -> bytes:
        return self.TRANSFER.encode(to, amount)

    def encode_approve(self, spender: str, amount: int) -> bytes:
        return self.APPROVE.encode(spender, amount)

    def encode_transfer_from(self, owner: str, to: str, amount: int) -> bytes:
        return self.TRANSFER_FROM.encode(owner, to, amount)

    def encode_mint(self, to: str, amount: int) -> bytes:
        return self.MINT.encode(to, amount)


class AidFlowManager(_ContractBinding):
    """Role-gated assignment and conversion contract."""

    SET_FIELD_OFFICE = AbiFunction("setFieldOffice", ("address", "bool"))
    SET_BENEFICIARY = AbiFunction("setBeneficiary", ("address", "bool"))
    ASSIGN_TO_BENEFICIARY = AbiFunction("assignToBeneficiary", ("address", "uint256"))
    CASH_OUT = AbiFunction("cashOut", ("uint256",))

    def encode_set_field_office(self, account: str, enabled: bool = True) -> bytes:
        return self.SET_FIELD_OFFICE.encode(account, enabled)

    def encode_set_beneficiary(self, account: str, enabled: bool = True) -> bytes:
        return self.SET_BENEFICIARY.encode(account, enabled)

    def encode_assign_to_beneficiary(self, beneficiary: str, amount: int) -> bytes:
        return self.ASSIGN_TO_BENEFICIARY.encode(beneficiary, amount)

    def encode_cash_out(self, amount: int) -> bytes:
        return self.CASH_OUT.encode(amount)
