"""Canonical operation hashing and signing.

The operation hash follows the EntryPoint v0.6 ``getUserOpHash`` layout:

    inner = keccak(abi.encode(sender, nonce, keccak(initCode), keccak(callData),
                              callGasLimit, verificationGasLimit, preVerificationGas,
                              maxFeePerGas, maxPriorityFeePerGas, keccak(paymasterAndData)))
    userOpHash = keccak(abi.encode(inner, entryPoint, chainId))

Binding the chain id and the entry point gives cross-chain replay protection;
hashing every gas field prevents a submitter from changing fees after the
owner signed. The sponsor address and its validity window enter through
``paymasterAndData``.
"""

import time
from enum import Enum
from typing import Callable, Optional, Tuple

from eth_abi import encode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import keccak, to_bytes

from .constants import MAX_UINT48, SPONSOR_VALID_AFTER_SKEW_SECONDS, SPONSOR_VALIDITY_SECONDS
from .contracts import EntryPoint
from .errors import ValidationError
from .models import UserOperation
from .utils.logging import get_logger
from .utils.validation import validate_address

__all__ = ["SignatureScheme", "OperationSigner", "SponsorSigner", "user_op_hash"]

_logger = get_logger(__name__)


class SignatureScheme(str, Enum):
    """How a 32-byte digest is turned into a signature.

    ``EIP191`` signs the personal-message digest of the hash, which is what
    the reference SimpleAccount (v0.6) recovers against. ``RAW`` signs the
    hash itself, for accounts that verify the bare ``userOpHash``.
    """
    EIP191 = "eip191"
    RAW = "raw"


def _sign_digest(key: LocalAccount, digest: bytes, scheme: SignatureScheme) -> bytes:
    if scheme is SignatureScheme.EIP191:
        signed = key.sign_message(encode_defunct(primitive=digest))
    else:
        signed = key.unsafe_sign_hash(digest)
    return bytes(signed.signature)


def _recover_digest(digest: bytes, signature: bytes, scheme: SignatureScheme) -> str:
    if scheme is SignatureScheme.EIP191:
        return Account.recover_message(encode_defunct(primitive=digest), signature=signature)
    vrs = bytearray(signature)
    # eth_keys expects a recovery id of 0/1, signers emit 27/28
    if len(vrs) == 65 and vrs[64] >= 27:
        vrs[64] -= 27
    try:
        public_key = keys.Signature(bytes(vrs)).recover_public_key_from_msg_hash(digest)
    except (BadSignature, KeyValidationError) as e:
        raise ValidationError(f"malformed operation signature: {e}") from e
    return public_key.to_checksum_address()


def user_op_hash(op: UserOperation, entry_point: str, chain_id: int) -> bytes:
    """Compute the canonical operation hash (see module docstring)."""
    packed = encode(
        [
            "address", "uint256", "bytes32", "bytes32",
            "uint256", "uint256", "uint256", "uint256", "uint256",
            "bytes32",
        ],
        [
            op.sender,
            op.nonce,
            keccak(op.init_code),
            keccak(op.call_data),
            op.call_gas_limit,
            op.verification_gas_limit,
            op.pre_verification_gas,
            op.max_fee_per_gas,
            op.max_priority_fee_per_gas,
            keccak(op.paymaster_and_data),
        ],
    )
    return keccak(encode(["bytes32", "address", "uint256"], [keccak(packed), entry_point, chain_id]))


class OperationSigner:
    """Hash operations for one (entry point, chain) pair and sign them with owner keys.

    Args:
        entry_point_address: Entry point the operations are bound to
        chain_id: Chain the operations are bound to
        scheme: Digest signing scheme expected by the account contract
        entry_point: Optional binding; when given, every locally computed hash
            is cross-checked against the entry point's own ``getUserOpHash``
    """

    def __init__(
        self,
        entry_point_address: str,
        chain_id: int,
        scheme: SignatureScheme = SignatureScheme.EIP191,
        entry_point: Optional[EntryPoint] = None,
    ):
        self.entry_point_address = validate_address(entry_point_address, "entry_point")
        self.chain_id = chain_id
        self.scheme = scheme
        self.entry_point = entry_point

    def hash(self, op: UserOperation) -> bytes:
        digest = user_op_hash(op, self.entry_point_address, self.chain_id)
        if self.entry_point is not None:
            remote = self.entry_point.get_user_op_hash(op)
            if remote != digest:
                raise ValidationError(
                    "Local operation hash differs from entry point getUserOpHash",
                    details={"local": "0x" + digest.hex(), "entry_point": "0x" + bytes(remote).hex()},
                )
        return digest

    def sign(self, op: UserOperation, owner: LocalAccount) -> UserOperation:
        """Return a copy of ``op`` carrying the owner's signature over its hash."""
        digest = self.hash(op)
        signature = _sign_digest(owner, digest, self.scheme)
        _logger.debug(
            "Signed operation",
            extra={"sender": op.sender, "nonce": op.nonce, "user_op_hash": "0x" + digest.hex()},
        )
        return op.with_signature(signature)

    def recover(self, op: UserOperation) -> str:
        """Recover the address that signed ``op``."""
        if not op.signature:
            raise ValidationError("operation is not signed")
        return _recover_digest(
            user_op_hash(op, self.entry_point_address, self.chain_id), op.signature, self.scheme
        )


class SponsorSigner:
    """Time-bounded sponsor approval for verifying paymasters.

    ``paymasterAndData`` becomes ``paymaster || abi.encode(uint48 validUntil,
    uint48 validAfter, bytes signature)``; the signature covers every
    operation field except ``paymasterAndData`` and ``signature``, plus the
    chain id, the paymaster address and the window.
    """

    def __init__(
        self,
        paymaster: str,
        signer: LocalAccount,
        chain_id: int,
        validity_seconds: int = SPONSOR_VALIDITY_SECONDS,
        valid_after_skew: int = SPONSOR_VALID_AFTER_SKEW_SECONDS,
        scheme: SignatureScheme = SignatureScheme.EIP191,
        clock: Callable[[], float] = time.time,
    ):
        self.paymaster = validate_address(paymaster, "paymaster")
        self.signer = signer
        self.chain_id = chain_id
        self.validity_seconds = validity_seconds
        self.valid_after_skew = valid_after_skew
        self.scheme = scheme
        self._clock = clock

    def window(self) -> Tuple[int, int]:
        """Return ``(valid_until, valid_after)`` relative to now."""
        now = int(self._clock())
        return now + self.validity_seconds, max(0, now - self.valid_after_skew)

    def sponsor_hash(self, op: UserOperation, valid_until: int, valid_after: int) -> bytes:
        for name, value in (("valid_until", valid_until), ("valid_after", valid_after)):
            if not 0 <= value <= MAX_UINT48:
                raise ValidationError(f"{name} does not fit in uint48")
        return keccak(
            encode(
                [
                    "address", "uint256", "bytes32", "bytes32",
                    "uint256", "uint256", "uint256", "uint256", "uint256",
                    "uint256", "address", "uint48", "uint48",
                ],
                [
                    op.sender,
                    op.nonce,
                    keccak(op.init_code),
                    keccak(op.call_data),
                    op.call_gas_limit,
                    op.verification_gas_limit,
                    op.pre_verification_gas,
                    op.max_fee_per_gas,
                    op.max_priority_fee_per_gas,
                    self.chain_id,
                    self.paymaster,
                    valid_until,
                    valid_after,
                ],
            )
        )

    def paymaster_and_data(
        self,
        op: UserOperation,
        valid_until: Optional[int] = None,
        valid_after: Optional[int] = None,
    ) -> bytes:
        if valid_until is None or valid_after is None:
            default_until, default_after = self.window()
            valid_until = default_until if valid_until is None else valid_until
            valid_after = default_after if valid_after is None else valid_after
        digest = self.sponsor_hash(op, valid_until, valid_after)
        signature = _sign_digest(self.signer, digest, self.scheme)
        payload = encode(["uint48", "uint48", "bytes"], [valid_until, valid_after, signature])
        return to_bytes(hexstr=self.paymaster) + payload

    def apply(self, op: UserOperation) -> UserOperation:
        """Return ``op`` with a freshly signed sponsor field."""
        return op.with_paymaster_and_data(self.paymaster_and_data(op))
