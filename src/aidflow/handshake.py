"""Sequenced multi-party handshake flows.

A flow is an ordered tuple of ``FlowStep`` values. Each step pairs a
precondition (checked against the running ledger), an action (a sponsored
operation or an administrative transaction) and the metadata needed to
record it. ``HandshakeOrchestrator`` is the single driver loop: it runs the
steps strictly in order, appends a ``HandshakeStep`` for each confirmed
result and halts on the first failure. Role permissions themselves are
enforced by the on-chain contracts, not here.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from .accountant import GasAccountant
from .builder import ContractCall
from .constants import (
    HANDSHAKE_FLOW_ASSIGN,
    HANDSHAKE_FLOW_CASH_OUT,
    HANDSHAKE_FLOW_MINT,
    SIMPLE_FLOW_ASSIGN,
    SIMPLE_FLOW_CASH_OUT,
    SIMPLE_FLOW_MINT,
    SIMPLE_FLOW_TRANSFER,
)
from .contracts import AidFlowManager, Token
from .errors import HandshakeAbortedError
from .ledger import RunningLedger
from .models import AdminTxResult, HandshakeStep, OperationResult, RoleBinding, StepKind
from .utils.logging import get_logger
from .utils.validation import to_token_units

__all__ = [
    "ADMIN",
    "MANAGER",
    "DONOR",
    "FIELD_OFFICE",
    "FIELD_MANAGER",
    "BENEFICIARY",
    "FlowStep",
    "Flow",
    "FlowReport",
    "SimpleFlowAmounts",
    "MutualFlowAmounts",
    "HandshakeOrchestrator",
    "simple_flow",
    "mutual_handshake_flow",
]

_logger = get_logger(__name__)

StepResult = Union[OperationResult, AdminTxResult]

# Role names. ADMIN is the administrative key, MANAGER the aid-flow manager contract.
ADMIN = "admin"
MANAGER = "manager"
DONOR = "donor"
FIELD_OFFICE = "field_office"
FIELD_MANAGER = "field_manager"
BENEFICIARY = "beneficiary"

_DEBITING_KINDS = (StepKind.TRANSFER, StepKind.ASSIGN, StepKind.TRANSFER_FROM, StepKind.CASH_OUT)


class FlowParticipant(Protocol):
    """What a flow needs from the client that executes it."""

    source_token: Token
    destination_token: Token
    manager: AidFlowManager

    def binding(self, role: str) -> RoleBinding: ...

    def execute_operation(self, role: str, call: ContractCall) -> OperationResult: ...

    def admin_mint(self, token: Token, to: str, amount: int) -> AdminTxResult: ...


@dataclass(frozen=True)
class FlowStep:
    """One step of a flow: metadata, precondition and action.

    ``run`` performs the step and returns its confirmed result. ``sender`` and
    ``target`` are addresses reported when the step fails.
    """
    action: str
    kind: StepKind
    source_role: str
    destination_role: str
    token: str
    amount: int
    run: Callable[[], StepResult] = field(repr=False, compare=False)
    token_out: Optional[str] = None
    sender: Optional[str] = None
    target: Optional[str] = None

    def precondition(self, ledger: RunningLedger) -> None:
        """Reject the step if it would overdraw the running ledger or exceed an allowance."""
        if self.kind is StepKind.TRANSFER_FROM:
            ledger.check_allowance(self.source_role, self.destination_role, self.token, self.amount)
        if self.kind in _DEBITING_KINDS:
            ledger.check_debit(self.source_role, self.token, self.amount)

    def record(self, step_id: int, result: StepResult) -> HandshakeStep:
        return HandshakeStep(
            step_id=step_id,
            action=self.action,
            kind=self.kind,
            source_role=self.source_role,
            destination_role=self.destination_role,
            token=self.token,
            amount=self.amount,
            result=result,
            token_out=self.token_out,
        )


@dataclass(frozen=True)
class Flow:
    name: str
    roles: Tuple[str, ...]
    steps: Tuple[FlowStep, ...]


@dataclass(frozen=True)
class FlowReport:
    """Terminal summary of a completed flow."""
    flow: str
    steps: Tuple[HandshakeStep, ...]
    final_balances: Dict[str, Dict[str, int]]
    gas: Dict[str, Any]

    @property
    def sponsored_operations(self) -> int:
        return sum(1 for s in self.steps if s.sponsored)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow": self.flow,
            "total_steps": len(self.steps),
            "sponsored_operations": self.sponsored_operations,
            "final_balances": {
                role: {token: str(amount) for token, amount in tokens.items()}
                for role, tokens in self.final_balances.items()
            },
            "gas": self.gas,
        }


class HandshakeOrchestrator:
    """Drive a flow step by step and keep its append-only log.

    Args:
        balance_reader: Returns ``{role: {token: balance}}`` for the given
            roles; queried once the last step is recorded
        accountant: Receives administrative results; sponsored results are
            recorded by the submitter
    """

    def __init__(
        self,
        balance_reader: Optional[Callable[[Sequence[str]], Dict[str, Dict[str, int]]]] = None,
        accountant: Optional[GasAccountant] = None,
    ):
        self.balance_reader = balance_reader
        self.accountant = accountant or GasAccountant()
        self._log: List[HandshakeStep] = []
        self.ledger = RunningLedger()

    @property
    def steps(self) -> Tuple[HandshakeStep, ...]:
        return tuple(self._log)

    def run(self, flow: Flow) -> FlowReport:
        """Run every step of ``flow`` in order.

        Raises:
            HandshakeAbortedError: First failing step; earlier steps stay recorded
        """
        _logger.info("Starting flow", extra={"flow": flow.name, "steps": len(flow.steps)})
        first_id = len(self._log) + 1
        for offset, step in enumerate(flow.steps):
            self._run_step(first_id + offset, step)

        final_balances = self.balance_reader(flow.roles) if self.balance_reader else self.ledger.balances()
        report = FlowReport(
            flow=flow.name,
            steps=self.steps,
            final_balances=final_balances,
            gas=self.accountant.summary(),
        )
        _logger.info(
            "Flow complete",
            extra={
                "flow": flow.name,
                "steps": len(report.steps),
                "sponsored_operations": report.sponsored_operations,
                "sponsored_gas_cost": report.gas["sponsored_gas_cost"],
            },
        )
        return report

    def _run_step(self, step_id: int, step: FlowStep) -> HandshakeStep:
        _logger.info(
            "Running step",
            extra={"step_id": step_id, "action": step.action, "sender": step.sender, "target": step.target},
        )
        try:
            step.precondition(self.ledger)
            result = step.run()
            recorded = step.record(step_id, result)
            self.ledger.apply(recorded)
        except Exception as e:
            _logger.error(
                "Step failed, halting flow",
                extra={"step_id": step_id, "action": step.action, "error": str(e)},
            )
            raise HandshakeAbortedError(step_id, step.action, step.sender, step.target, e) from e

        self._log.append(recorded)
        if isinstance(result, AdminTxResult):
            self.accountant.record_admin(result)
        _logger.info(
            "Step recorded",
            extra={"step_id": step_id, "action": step.action, "tx_hash": result.tx_hash},
        )
        return recorded


@dataclass(frozen=True)
class SimpleFlowAmounts:
    """Whole-token amounts of the simple flow."""
    mint: int = SIMPLE_FLOW_MINT
    transfer: int = SIMPLE_FLOW_TRANSFER
    assign: int = SIMPLE_FLOW_ASSIGN
    cash_out: int = SIMPLE_FLOW_CASH_OUT


@dataclass(frozen=True)
class MutualFlowAmounts:
    """Whole-token amounts of the mutual handshake flow."""
    mint: int = HANDSHAKE_FLOW_MINT
    assign: int = HANDSHAKE_FLOW_ASSIGN
    cash_out: int = HANDSHAKE_FLOW_CASH_OUT


def _mint_step(client: FlowParticipant, action: str, token: Token, role: str, amount: int) -> FlowStep:
    to = client.binding(role).address
    return FlowStep(
        action=action,
        kind=StepKind.MINT,
        source_role=ADMIN,
        destination_role=role,
        token=token.symbol,
        amount=amount,
        run=lambda: client.admin_mint(token, to, amount),
        target=token.address,
    )


def _op_step(
    client: FlowParticipant,
    action: str,
    kind: StepKind,
    sender_role: str,
    source_role: str,
    destination_role: str,
    token: Token,
    amount: int,
    call: ContractCall,
    token_out: Optional[str] = None,
) -> FlowStep:
    return FlowStep(
        action=action,
        kind=kind,
        source_role=source_role,
        destination_role=destination_role,
        token=token.symbol,
        amount=amount,
        run=lambda: client.execute_operation(sender_role, call),
        token_out=token_out,
        sender=client.binding(sender_role).address,
        target=call.target,
    )


def simple_flow(client: FlowParticipant, amounts: SimpleFlowAmounts = SimpleFlowAmounts()) -> Flow:
    """Mint to donor, donor transfers to field office, field office assigns to
    beneficiary through the manager, beneficiary cashes out.

    Field office and beneficiary roles must already be configured on the
    manager contract.
    """
    src, dst, manager = client.source_token, client.destination_token, client.manager
    mint = to_token_units(amounts.mint)
    transfer = to_token_units(amounts.transfer)
    assign = to_token_units(amounts.assign)
    cash_out = to_token_units(amounts.cash_out)
    field_office = client.binding(FIELD_OFFICE).address
    beneficiary = client.binding(BENEFICIARY).address

    steps = (
        _mint_step(client, "Mint tokens to donor", src, DONOR, mint),
        _op_step(
            client, "Donor transfers tokens to field office", StepKind.TRANSFER,
            DONOR, DONOR, FIELD_OFFICE, src, transfer,
            ContractCall(src.address, src.encode_transfer(field_office, transfer), function="transfer"),
        ),
        _op_step(
            client, "Field office approves manager", StepKind.APPROVE,
            FIELD_OFFICE, FIELD_OFFICE, MANAGER, src, assign,
            ContractCall(src.address, src.encode_approve(manager.address, assign), function="approve"),
        ),
        _op_step(
            client, "Field office assigns tokens to beneficiary", StepKind.ASSIGN,
            FIELD_OFFICE, FIELD_OFFICE, BENEFICIARY, src, assign,
            ContractCall(
                manager.address,
                manager.encode_assign_to_beneficiary(beneficiary, assign),
                function="assignToBeneficiary",
            ),
        ),
        _op_step(
            client, "Beneficiary approves manager", StepKind.APPROVE,
            BENEFICIARY, BENEFICIARY, MANAGER, src, cash_out,
            ContractCall(src.address, src.encode_approve(manager.address, cash_out), function="approve"),
        ),
        _op_step(
            client, "Beneficiary cashes out", StepKind.CASH_OUT,
            BENEFICIARY, BENEFICIARY, BENEFICIARY, src, cash_out,
            ContractCall(manager.address, manager.encode_cash_out(cash_out), function="cashOut"),
            token_out=dst.symbol,
        ),
    )
    return Flow("simple", (DONOR, FIELD_OFFICE, BENEFICIARY), steps)


def mutual_handshake_flow(client: FlowParticipant, amounts: MutualFlowAmounts = MutualFlowAmounts()) -> Flow:
    """Mint to field manager, field manager assigns to beneficiary, then the
    cash-out handshake: beneficiary approves, field manager pulls the tokens
    and the admin mints the destination token to the beneficiary.
    """
    src, dst = client.source_token, client.destination_token
    mint = to_token_units(amounts.mint)
    assign = to_token_units(amounts.assign)
    cash_out = to_token_units(amounts.cash_out)
    field_manager = client.binding(FIELD_MANAGER).address
    beneficiary = client.binding(BENEFICIARY).address

    steps = (
        _mint_step(client, "Mint tokens to field manager", src, FIELD_MANAGER, mint),
        _op_step(
            client, "Field manager assigns tokens to beneficiary", StepKind.ASSIGN,
            FIELD_MANAGER, FIELD_MANAGER, BENEFICIARY, src, assign,
            ContractCall(src.address, src.encode_transfer(beneficiary, assign), function="transfer"),
        ),
        _op_step(
            client, "Beneficiary approves field manager", StepKind.APPROVE,
            BENEFICIARY, BENEFICIARY, FIELD_MANAGER, src, cash_out,
            ContractCall(src.address, src.encode_approve(field_manager, cash_out), function="approve"),
        ),
        _op_step(
            client, "Field manager pulls tokens from beneficiary", StepKind.TRANSFER_FROM,
            FIELD_MANAGER, BENEFICIARY, FIELD_MANAGER, src, cash_out,
            ContractCall(
                src.address,
                src.encode_transfer_from(beneficiary, field_manager, cash_out),
                function="transferFrom",
            ),
        ),
        _mint_step(client, "Mint cash tokens to beneficiary", dst, BENEFICIARY, cash_out),
    )
    return Flow("mutual_handshake", (FIELD_MANAGER, BENEFICIARY), steps)
