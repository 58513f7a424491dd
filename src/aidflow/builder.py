"""Construction of unsigned abstracted operations.

The builder is the single place where an operation envelope is assembled:
it decides whether the creation payload is needed, wraps the caller's
intent in the account's ``execute`` dispatcher, reads the sender nonce
from the entry point and fills gas fields from the network profile.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from eth_utils import to_bytes
from web3 import Web3

from .address_resolver import AccountAddressResolver
from .config import NetworkProfile
from .constants import DEFAULT_NONCE_KEY
from .contracts import EntryPoint, SmartAccount
from .errors import NonceFetchFailedError, ValidationError
from .models import AccountRecord, UserOperation
from .utils.logging import get_logger
from .utils.validation import validate_address, validate_amount

__all__ = ["ContractCall", "NonceTracker", "OperationBuilder"]

_logger = get_logger(__name__)


@dataclass(frozen=True)
class ContractCall:
    """Inner call an account should dispatch: target contract, value and call data."""
    target: str
    data: bytes
    value: int = 0
    function: str = ""

    def __post_init__(self):
        validate_address(self.target, "target")
        validate_amount(self.value, "value")


class NonceTracker:
    """Last confirmed nonce per sender.

    Only confirmations advance the tracker, so a submission that never
    confirms leaves the next expected nonce unchanged.
    """

    def __init__(self) -> None:
        self._confirmed: Dict[str, int] = {}

    def last_confirmed(self, sender: str) -> Optional[int]:
        return self._confirmed.get(sender)

    def expected(self, sender: str) -> Optional[int]:
        """Next nonce the sender should use, or None if nothing was confirmed yet."""
        last = self._confirmed.get(sender)
        return None if last is None else last + 1

    def confirm(self, sender: str, nonce: int) -> None:
        last = self._confirmed.get(sender)
        if last is not None and nonce <= last:
            raise ValidationError(
                f"nonce {nonce} for {sender} already confirmed (last {last})",
                details={"sender": sender, "nonce": nonce, "last_confirmed": last},
            )
        self._confirmed[sender] = nonce


class OperationBuilder:
    """Assemble unsigned operations for a sponsor-paid account."""

    def __init__(
        self,
        w3: Web3,
        entry_point: EntryPoint,
        resolver: AccountAddressResolver,
        profile: NetworkProfile,
        sponsor: str,
        nonce_tracker: Optional[NonceTracker] = None,
        nonce_key: int = DEFAULT_NONCE_KEY,
    ):
        self.w3 = w3
        self.entry_point = entry_point
        self.resolver = resolver
        self.profile = profile
        self.sponsor = validate_address(sponsor, "sponsor")
        self.nonce_tracker = nonce_tracker or NonceTracker()
        self.nonce_key = nonce_key

    def build(self, record: AccountRecord, call: ContractCall) -> UserOperation:
        """Build the unsigned operation executing ``call`` from ``record``'s account.

        Raises:
            AddressResolutionMismatchError: Factory disagrees with the record's address
            NonceFetchFailedError: Nonce query failed or returned a stale value
        """
        self.resolver.verify(record)
        init_code = self._init_code(record)
        call_data = SmartAccount.encode_execute(call.target, call.value, call.data)
        nonce = self.fetch_nonce(record.address)

        op = UserOperation(
            sender=record.address,
            nonce=nonce,
            init_code=init_code,
            call_data=call_data,
            call_gas_limit=self.profile.call_gas_limit,
            verification_gas_limit=self.profile.verification_gas_limit,
            pre_verification_gas=self.profile.pre_verification_gas,
            max_fee_per_gas=self.profile.max_fee_per_gas,
            max_priority_fee_per_gas=self.profile.max_priority_fee_per_gas,
            paymaster_and_data=to_bytes(hexstr=self.sponsor),
        )
        _logger.debug(
            "Built operation",
            extra={
                "sender": op.sender,
                "nonce": nonce,
                "target": call.target,
                "function": call.function,
                "deploys_account": op.deploys_account,
            },
        )
        return op

    def fetch_nonce(self, sender: str) -> int:
        """Read the sender's nonce from the entry point and check it against confirmations."""
        try:
            nonce = self.entry_point.get_nonce(sender, self.nonce_key)
        except Exception as e:
            raise NonceFetchFailedError(
                f"Could not fetch nonce for {sender}: {e}",
                details={"sender": sender, "key": self.nonce_key},
            ) from e

        expected = self.nonce_tracker.expected(sender)
        if expected is not None and nonce < expected:
            raise NonceFetchFailedError(
                f"Entry point reports nonce {nonce} for {sender}, expected at least {expected}",
                details={"sender": sender, "nonce": nonce, "expected": expected},
            )
        return nonce

    def _init_code(self, record: AccountRecord) -> bytes:
        code = self.w3.eth.get_code(record.address)
        if len(code) > 0:
            if not record.deployed:
                record.mark_deployed()
            return b""
        return self.resolver.factory.build_init_code(record.owner, record.salt)
