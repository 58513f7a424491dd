"""Gas accounting across a run.

Sponsored operations and administrative transactions are tallied
separately. Sponsored figures keep their provenance: totals taken from the
entry point's execution event are authoritative, totals derived from the
outer transaction receipt are estimates.
"""

from collections import defaultdict
from typing import Any, Dict, List

from .models import AdminTxResult, OperationResult
from .utils.logging import get_logger

__all__ = ["GasAccountant"]

_logger = get_logger(__name__)


class GasAccountant:
    """Collect OperationResults and AdminTxResults and summarise their gas."""

    def __init__(self) -> None:
        self.operations: List[OperationResult] = []
        self.admin_transactions: List[AdminTxResult] = []

    def record(self, result: OperationResult) -> None:
        self.operations.append(result)

    def record_admin(self, result: AdminTxResult) -> None:
        self.admin_transactions.append(result)

    @property
    def sponsored_gas_used(self) -> int:
        return sum(r.gas_used for r in self.operations)

    @property
    def sponsored_gas_cost(self) -> int:
        return sum(r.gas_cost for r in self.operations)

    @property
    def admin_gas_cost(self) -> int:
        return sum(r.gas_cost for r in self.admin_transactions)

    @property
    def sponsor_spend(self) -> int:
        """Total decrease of the sponsor deposit observed around submissions."""
        return sum(r.sponsor_balance_delta for r in self.operations)

    @property
    def has_estimates(self) -> bool:
        return any(not r.gas.authoritative for r in self.operations)

    def by_sender(self) -> Dict[str, Dict[str, int]]:
        totals: Dict[str, Dict[str, int]] = defaultdict(lambda: {"operations": 0, "gas_used": 0, "gas_cost": 0})
        for r in self.operations:
            entry = totals[r.sender]
            entry["operations"] += 1
            entry["gas_used"] += r.gas_used
            entry["gas_cost"] += r.gas_cost
        return dict(totals)

    def summary(self) -> Dict[str, Any]:
        authoritative = [r for r in self.operations if r.gas.authoritative]
        estimated = [r for r in self.operations if not r.gas.authoritative]
        summary = {
            "sponsored_operations": len(self.operations),
            "accounts_deployed": sum(1 for r in self.operations if r.sender_deployed),
            "sponsored_gas_used": self.sponsored_gas_used,
            "sponsored_gas_cost": self.sponsored_gas_cost,
            "authoritative_gas_cost": sum(r.gas_cost for r in authoritative),
            "estimated_gas_cost": sum(r.gas_cost for r in estimated),
            "estimated_operations": len(estimated),
            "sponsor_spend": self.sponsor_spend,
            "admin_transactions": len(self.admin_transactions),
            "admin_gas_cost": self.admin_gas_cost,
            "by_sender": self.by_sender(),
        }
        if estimated:
            _logger.warning(
                "Gas summary includes estimated figures",
                extra={"estimated_operations": len(estimated)},
            )
        return summary
