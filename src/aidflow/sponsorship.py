"""Sponsor (paymaster) capacity checks and registration.

The coordinator never submits operations itself. It answers two
pre-flight questions for the submitter: is the sender registered with the
sponsor, and does the sponsor's entry point deposit cover the operation's
worst-case cost. Both are checked locally so a doomed operation never
costs a submission.
"""

from typing import Optional, Set

from .config import NetworkProfile
from .contracts import EntryPoint, Paymaster
from .errors import SponsorNotRegisteredError, SponsorshipInsufficientError, ValidationError
from .models import AccountRecord, AdminTxResult, UserOperation
from .transactions import AdminTransactor
from .utils.logging import get_logger

__all__ = ["SponsorshipCoordinator"]

_logger = get_logger(__name__)


class SponsorshipCoordinator:
    """Track a sponsor's deposit and which accounts it sponsors.

    Args:
        entry_point: Entry point holding the sponsor's deposit
        paymaster: Sponsor contract binding
        transactor: Administrative key used for registration and top-ups
        profile: Network profile (sponsor funding target)
    """

    def __init__(
        self,
        entry_point: EntryPoint,
        paymaster: Paymaster,
        transactor: AdminTransactor,
        profile: NetworkProfile,
    ):
        self.entry_point = entry_point
        self.paymaster = paymaster
        self.transactor = transactor
        self.profile = profile
        self._registered: Set[str] = set()

    @property
    def sponsor(self) -> str:
        return self.paymaster.address

    @staticmethod
    def estimate_max_cost(op: UserOperation) -> int:
        """Worst-case cost: (call + verification + pre-verification gas) x max fee per gas."""
        return op.total_gas_limit * op.max_fee_per_gas

    def deposit(self) -> int:
        """Sponsor's current deposit at the entry point (wei)."""
        return self.entry_point.balance_of(self.sponsor)

    def is_registered(self, sender: str) -> bool:
        return sender in self._registered

    def register(self, record: AccountRecord) -> Optional[AdminTxResult]:
        """Register an account for sponsorship; a no-op when already registered."""
        if record.address in self._registered:
            return None
        result = self.transactor.transact(
            self.paymaster.address,
            self.paymaster.encode_sponsor_account(record.address),
            description=f"sponsorAccount({record.address})",
        )
        self._registered.add(record.address)
        _logger.info("Account registered for sponsorship", extra={"account": record.address, "tx_hash": result.tx_hash})
        return result

    def check(self, op: UserOperation) -> int:
        """Pre-flight check for one operation.

        Returns:
            The sponsor deposit observed, for balance-delta accounting

        Raises:
            SponsorNotRegisteredError: Sender never registered
            SponsorshipInsufficientError: Deposit below worst-case cost
        """
        if op.sender not in self._registered:
            raise SponsorNotRegisteredError(op.sender)
        required = self.estimate_max_cost(op)
        deposit = self.deposit()
        if deposit < required:
            raise SponsorshipInsufficientError(self.sponsor, deposit, required)
        return deposit

    def top_up(self, amount: int) -> AdminTxResult:
        """Add ``amount`` wei to the sponsor's entry point deposit."""
        if amount <= 0:
            raise ValidationError("top-up amount must be positive")
        result = self.transactor.transact(
            self.entry_point.address,
            self.entry_point.encode_deposit_to(self.sponsor),
            value=amount,
            description=f"depositTo({self.sponsor})",
        )
        _logger.info("Sponsor deposit topped up", extra={"amount": amount, "tx_hash": result.tx_hash})
        return result

    def ensure_funded(self, target: Optional[int] = None) -> Optional[AdminTxResult]:
        """Top the deposit up to ``target`` (default: the profile's funding target)."""
        target = self.profile.sponsor_funding_target if target is None else target
        current = self.deposit()
        if current >= target:
            _logger.debug("Sponsor deposit sufficient", extra={"deposit": current, "target": target})
            return None
        _logger.warning("Sponsor deposit below funding target", extra={"deposit": current, "target": target})
        return self.top_up(target - current)

