import pytest

from aidflow.errors import LedgerOverdraftError, ValidationError
from aidflow.ledger import RunningLedger
from aidflow.models import AdminTxResult, HandshakeStep, StepKind

RESULT = AdminTxResult(tx_hash="0x01", gas_used=1, gas_cost=1, success=True)


def step(step_id, kind, src, dst, amount, token="RAHAT", token_out=None):
    return HandshakeStep(
        step_id=step_id,
        action=kind.value,
        kind=kind,
        source_role=src,
        destination_role=dst,
        token=token,
        amount=amount,
        result=RESULT,
        token_out=token_out,
    )


def test_mint_and_transfer():
    ledger = RunningLedger.from_steps(
        [
            step(1, StepKind.MINT, "admin", "donor", 100),
            step(2, StepKind.TRANSFER, "donor", "field_office", 40),
        ]
    )
    assert ledger.balance("donor", "RAHAT") == 60
    assert ledger.balance("field_office", "RAHAT") == 40
    assert ledger.balance("admin", "RAHAT") == 0


def test_overdraft_is_rejected():
    with pytest.raises(LedgerOverdraftError) as exc:
        RunningLedger.from_steps(
            [
                step(1, StepKind.MINT, "admin", "donor", 10),
                step(2, StepKind.TRANSFER, "donor", "field_office", 11),
            ]
        )
    assert exc.value.details == {"account": "donor", "token": "RAHAT", "balance": 10, "amount": 11}
    assert isinstance(exc.value, ValidationError)


def test_transfer_from_requires_allowance():
    ledger = RunningLedger.from_steps(
        [
            step(1, StepKind.MINT, "admin", "beneficiary", 50),
            step(2, StepKind.APPROVE, "beneficiary", "field_manager", 30),
            step(3, StepKind.TRANSFER_FROM, "beneficiary", "field_manager", 30),
        ]
    )
    assert ledger.balance("beneficiary", "RAHAT") == 20
    assert ledger.balance("field_manager", "RAHAT") == 30
    assert ledger.allowance("beneficiary", "field_manager", "RAHAT") == 0

    with pytest.raises(ValidationError, match="may pull 0"):
        ledger.apply(step(4, StepKind.TRANSFER_FROM, "beneficiary", "field_manager", 1))


def test_cash_out_converts_tokens():
    ledger = RunningLedger.from_steps(
        [
            step(1, StepKind.MINT, "admin", "beneficiary", 20),
            step(2, StepKind.CASH_OUT, "beneficiary", "beneficiary", 5, token_out="CASH"),
        ]
    )
    assert ledger.balances() == {"beneficiary": {"CASH": 5, "RAHAT": 15}}


def test_cash_out_needs_output_token():
    ledger = RunningLedger({("beneficiary", "RAHAT"): 5})
    with pytest.raises(ValidationError, match="output token"):
        ledger.apply(step(1, StepKind.CASH_OUT, "beneficiary", "beneficiary", 5))


def test_opening_balances_and_can_debit():
    ledger = RunningLedger({("donor", "RAHAT"): 7})
    assert ledger.can_debit("donor", "RAHAT", 7)
    assert not ledger.can_debit("donor", "RAHAT", 8)
    assert not ledger.can_debit("donor", "CASH", 1)


def test_check_allowance():
    ledger = RunningLedger.from_steps([step(1, StepKind.APPROVE, "beneficiary", "field_manager", 30)])
    ledger.check_allowance("beneficiary", "field_manager", "RAHAT", 30)

    with pytest.raises(ValidationError) as exc:
        ledger.check_allowance("beneficiary", "field_manager", "RAHAT", 31)
    assert exc.value.details["allowance"] == 30
    assert exc.value.details["amount"] == 31
