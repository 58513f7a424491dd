from aidflow.accountant import GasAccountant
from aidflow.models import AdminTxResult, GasEstimated, GasFromEvent, OperationResult

SENDER_A = "0x" + "0a" * 20
SENDER_B = "0x" + "0b" * 20


def _result(sender, gas, deployed=False, delta=None, success=True):
    return OperationResult(
        tx_hash="0x01",
        user_op_hash="0x02",
        sender=sender,
        nonce=0,
        gas=gas,
        sponsor_balance_delta=gas.gas_cost if delta is None else delta,
        sender_deployed=deployed,
        success=success,
    )


def test_totals_and_provenance_split():
    accountant = GasAccountant()
    accountant.record(_result(SENDER_A, GasFromEvent(gas_used=100, gas_cost=1_000), deployed=True))
    accountant.record(_result(SENDER_A, GasFromEvent(gas_used=50, gas_cost=500)))
    accountant.record(_result(SENDER_B, GasEstimated(gas_used=70, gas_cost=700), delta=650))
    accountant.record_admin(AdminTxResult(tx_hash="0x03", gas_used=21_000, gas_cost=42, success=True))

    summary = accountant.summary()

    assert summary["sponsored_operations"] == 3
    assert summary["accounts_deployed"] == 1
    assert summary["sponsored_gas_used"] == 220
    assert summary["sponsored_gas_cost"] == 2_200
    assert summary["authoritative_gas_cost"] == 1_500
    assert summary["estimated_gas_cost"] == 700
    assert summary["estimated_operations"] == 1
    assert summary["sponsor_spend"] == 2_150
    assert summary["admin_transactions"] == 1
    assert summary["admin_gas_cost"] == 42
    assert summary["by_sender"][SENDER_A] == {"operations": 2, "gas_used": 150, "gas_cost": 1_500}
    assert accountant.has_estimates


def test_empty_summary():
    summary = GasAccountant().summary()
    assert summary["sponsored_operations"] == 0
    assert summary["sponsored_gas_cost"] == 0
    assert summary["by_sender"] == {}


def test_gas_tags():
    assert GasFromEvent(gas_used=1, gas_cost=2).authoritative is True
    assert GasEstimated(gas_used=1, gas_cost=2).authoritative is False


def test_operation_result_to_dict_marks_source():
    data = _result(SENDER_B, GasEstimated(gas_used=70, gas_cost=700)).to_dict()
    assert data["gas"] == {"source": "estimated", "gas_used": 70, "gas_cost": 700}
    assert data["sender"] == SENDER_B
