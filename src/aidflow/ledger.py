"""Running token ledger reconstructed from the handshake step log.

The ledger tracks balances and allowances per role and token symbol, in
base units. It is a local mirror used to check a flow before a step is
submitted and to audit a finished step log; the on-chain contracts remain
the authority.
"""

from collections import defaultdict
from typing import Dict, Iterable, Optional, Tuple

from .errors import LedgerOverdraftError, ValidationError
from .models import HandshakeStep, StepKind

__all__ = ["RunningLedger"]


class RunningLedger:
    """Balances and allowances keyed by role name and token symbol."""

    def __init__(self, opening: Optional[Dict[Tuple[str, str], int]] = None) -> None:
        self._balances: Dict[Tuple[str, str], int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str, str], int] = defaultdict(int)
        for key, amount in (opening or {}).items():
            self._balances[key] = amount

    @classmethod
    def from_steps(
        cls,
        steps: Iterable[HandshakeStep],
        opening: Optional[Dict[Tuple[str, str], int]] = None,
    ) -> "RunningLedger":
        """Replay a step log; raises LedgerOverdraftError at the first overdraft."""
        ledger = cls(opening)
        for step in steps:
            ledger.apply(step)
        return ledger

    def balance(self, role: str, token: str) -> int:
        return self._balances.get((role, token), 0)

    def allowance(self, owner: str, spender: str, token: str) -> int:
        return self._allowances.get((owner, spender, token), 0)

    def balances(self) -> Dict[str, Dict[str, int]]:
        out: Dict[str, Dict[str, int]] = defaultdict(dict)
        for (role, token), amount in sorted(self._balances.items()):
            out[role][token] = amount
        return dict(out)

    def can_debit(self, role: str, token: str, amount: int) -> bool:
        return self.balance(role, token) >= amount

    def check_debit(self, role: str, token: str, amount: int) -> None:
        balance = self.balance(role, token)
        if amount > balance:
            raise LedgerOverdraftError(role, token, balance, amount)

    def check_allowance(self, owner: str, spender: str, token: str, amount: int) -> None:
        allowed = self.allowance(owner, spender, token)
        if amount > allowed:
            raise ValidationError(
                f"{spender} may pull {allowed} {token} from {owner}, needs {amount}",
                details={"owner": owner, "spender": spender, "token": token, "allowance": allowed, "amount": amount},
            )

    def apply(self, step: HandshakeStep) -> None:
        """Apply one recorded step."""
        kind, src, dst, token, amount = step.kind, step.source_role, step.destination_role, step.token, step.amount
        if amount < 0:
            raise ValidationError(f"step {step.step_id} has a negative amount")

        if kind is StepKind.MINT:
            self._balances[(dst, token)] += amount
        elif kind in (StepKind.TRANSFER, StepKind.ASSIGN):
            self._move(src, dst, token, amount)
        elif kind is StepKind.APPROVE:
            self._allowances[(src, dst, token)] = amount
        elif kind is StepKind.TRANSFER_FROM:
            self.check_allowance(src, dst, token, amount)
            self._move(src, dst, token, amount)
            self._allowances[(src, dst, token)] -= amount
        elif kind is StepKind.CASH_OUT:
            if not step.token_out:
                raise ValidationError(f"cash-out step {step.step_id} has no output token")
            self.check_debit(src, token, amount)
            self._balances[(src, token)] -= amount
            self._balances[(src, step.token_out)] += amount
        else:
            raise ValidationError(f"unknown step kind {kind}")

    def _move(self, src: str, dst: str, token: str, amount: int) -> None:
        self.check_debit(src, token, amount)
        self._balances[(src, token)] -= amount
        self._balances[(dst, token)] += amount
