"""Submission of signed operations to the execution entry point.

The submitter plays the role of a single trusted bundler: it calls
``handleOps`` directly from the administrative key, waits a bounded time
for the receipt and reconciles the outcome of each operation. There is no
automatic retry; a caller that wants one must rebuild the operation.
"""

from typing import Dict, List, Optional, Sequence

from web3 import Web3
from web3.types import TxReceipt

from .accountant import GasAccountant
from .builder import NonceTracker
from .constants import DEFAULT_HANDLE_OPS_GAS_LIMIT
from .contracts import EntryPoint
from .errors import TransactionRevertedError, ValidationError
from .models import AccountRecord, GasEstimated, GasFigures, GasFromEvent, OperationResult, UserOperation
from .signer import user_op_hash
from .sponsorship import SponsorshipCoordinator
from .transactions import AdminTransactor, decode_revert_reason
from .utils.logging import get_logger
from .utils.validation import validate_address

__all__ = ["OperationSubmitter"]

_logger = get_logger(__name__)


class OperationSubmitter:
    """Submit signed operations and turn receipts into OperationResults.

    Args:
        transactor: Administrative key sending the ``handleOps`` transaction
        entry_point: Execution entry point binding
        sponsorship: Pre-flight sponsor checks (run before anything is sent)
        nonce_tracker: Advanced only for operations the entry point executed
        accountant: Optional observer receiving every result
        beneficiary: Fee beneficiary (defaults to the administrative key)
        handle_ops_gas_limit: Gas limit of the outer transaction
    """

    def __init__(
        self,
        transactor: AdminTransactor,
        entry_point: EntryPoint,
        sponsorship: SponsorshipCoordinator,
        nonce_tracker: NonceTracker,
        accountant: Optional[GasAccountant] = None,
        beneficiary: Optional[str] = None,
        handle_ops_gas_limit: int = DEFAULT_HANDLE_OPS_GAS_LIMIT,
    ):
        self.transactor = transactor
        self.entry_point = entry_point
        self.sponsorship = sponsorship
        self.nonce_tracker = nonce_tracker
        self.accountant = accountant
        self.beneficiary = validate_address(beneficiary or transactor.address, "beneficiary")
        self.handle_ops_gas_limit = handle_ops_gas_limit

    @property
    def chain_id(self) -> int:
        return self.transactor.profile.chain_id

    def submit(
        self,
        ops: Sequence[UserOperation],
        records: Optional[Sequence[AccountRecord]] = None,
    ) -> List[OperationResult]:
        """Submit a batch of signed operations and wait for confirmation.

        Args:
            ops: Signed operations (normally a single one)
            records: Account records of the senders; their ``deployed`` flag
                is refreshed from chain state after confirmation

        Raises:
            SponsorNotRegisteredError / SponsorshipInsufficientError: Pre-flight
                rejection; nothing was sent
            SubmissionTimeoutError: Not confirmed within the transactor timeout
            TransactionRevertedError: Outer transaction or an operation failed
        """
        if not ops:
            raise ValidationError("at least one operation is required")
        for op in ops:
            if not op.signature:
                raise ValidationError(f"operation from {op.sender} is not signed")

        deposit_before = min(self.sponsorship.check(op) for op in ops)
        hashes = [user_op_hash(op, self.entry_point.address, self.chain_id) for op in ops]

        _logger.info(
            "Submitting operations",
            extra={
                "count": len(ops),
                "senders": ",".join(op.sender for op in ops),
                "beneficiary": self.beneficiary,
            },
        )
        receipt = self.transactor.send_and_wait(
            self.entry_point.address,
            self.entry_point.encode_handle_ops(ops, self.beneficiary),
            gas=self.handle_ops_gas_limit,
            description="handleOps",
        )
        tx_hash = Web3.to_hex(receipt["transactionHash"])
        if receipt["status"] != 1:
            # handleOps reverted as a whole; no nonce was consumed
            raise TransactionRevertedError(
                "handleOps transaction reverted",
                tx_hash=tx_hash,
                details={"senders": [op.sender for op in ops]},
            )

        delta = deposit_before - self.sponsorship.deposit()
        by_sender: Dict[str, AccountRecord] = {r.address: r for r in records or ()}
        results = [
            self._reconcile(op, op_hash, receipt, tx_hash, delta if len(ops) == 1 else None, by_sender.get(op.sender))
            for op, op_hash in zip(ops, hashes)
        ]

        failed = next((r for r in results if not r.success), None)
        if failed is not None:
            raise TransactionRevertedError(
                f"Operation from {failed.sender} reverted: {failed.revert_reason or 'no reason given'}",
                tx_hash=tx_hash,
                details={
                    "sender": failed.sender,
                    "nonce": failed.nonce,
                    "user_op_hash": failed.user_op_hash,
                    "revert_reason": failed.revert_reason,
                },
            )
        return results

    def _reconcile(
        self,
        op: UserOperation,
        op_hash: bytes,
        receipt: TxReceipt,
        tx_hash: str,
        sponsor_delta: Optional[int],
        record: Optional[AccountRecord],
    ) -> OperationResult:
        logs = receipt.get("logs") or []
        event = next(
            (
                e
                for e in EntryPoint.USER_OPERATION_EVENT.find(logs, emitter=self.entry_point.address)
                if bytes(e["userOpHash"]) == op_hash
            ),
            None,
        )

        gas: GasFigures
        revert_reason = None
        if event is not None:
            gas = GasFromEvent(gas_used=event["actualGasUsed"], gas_cost=event["actualGasCost"])
            success = bool(event["success"])
            if not success:
                revert_reason = self._revert_reason(logs, op_hash)
        else:
            gas_used = receipt["gasUsed"]
            gas = GasEstimated(gas_used=gas_used, gas_cost=gas_used * (receipt.get("effectiveGasPrice") or 0))
            success = receipt["status"] == 1
            _logger.warning(
                "No UserOperationEvent in receipt, using transaction gas as estimate",
                extra={"sender": op.sender, "tx_hash": tx_hash},
            )

        # the entry point consumed the nonce whether or not the inner call succeeded
        self.nonce_tracker.confirm(op.sender, op.nonce)

        deployed_now = len(self.transactor.w3.eth.get_code(op.sender)) > 0
        if record is not None and deployed_now and not record.deployed:
            record.mark_deployed()

        result = OperationResult(
            tx_hash=tx_hash,
            user_op_hash="0x" + op_hash.hex(),
            sender=op.sender,
            nonce=op.nonce,
            gas=gas,
            sponsor_balance_delta=gas.gas_cost if sponsor_delta is None else sponsor_delta,
            sender_deployed=op.deploys_account and deployed_now,
            success=success,
            revert_reason=revert_reason,
        )
        if self.accountant is not None:
            self.accountant.record(result)
        _logger.info(
            "Operation confirmed",
            extra={
                "sender": op.sender,
                "nonce": op.nonce,
                "tx_hash": tx_hash,
                "success": success,
                "gas_used": gas.gas_used,
                "gas_cost": gas.gas_cost,
                "gas_source": "event" if gas.authoritative else "estimated",
                "account_deployed": result.sender_deployed,
            },
        )
        return result

    def _revert_reason(self, logs, op_hash: bytes) -> Optional[str]:
        for event in EntryPoint.USER_OPERATION_REVERT_REASON.find(logs, emitter=self.entry_point.address):
            if bytes(event["userOpHash"]) == op_hash:
                raw = bytes(event["revertReason"])
                return decode_revert_reason(raw) or ("0x" + raw.hex() if raw else None)
        return None
