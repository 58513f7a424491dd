"""Counterfactual smart-account address resolution."""

from typing import Dict, Tuple

from .contracts import AccountFactory
from .errors import AddressResolutionMismatchError, ValidationError
from .models import AccountRecord
from .utils.logging import get_logger
from .utils.validation import validate_address

__all__ = ["AccountAddressResolver"]

_logger = get_logger(__name__)


class AccountAddressResolver:
    """Resolve the address an account will occupy once the factory creates it.

    The factory's ``getAddress`` view runs the same CREATE2 derivation as its
    ``createAccount``, so the result holds whether or not the account exists.
    Results are memoized per ``(owner, salt)``.
    """

    def __init__(self, factory: AccountFactory):
        self.factory = factory
        self._cache: Dict[Tuple[str, int], str] = {}

    def compute_address(self, owner: str, salt: int) -> str:
        """Return the deterministic account address for ``(owner, salt)``.

        Raises:
            ValidationError: If the owner address is malformed or salt negative
        """
        owner = validate_address(owner, "owner")
        if salt < 0:
            raise ValidationError("salt must be non-negative")
        key = (owner, salt)
        if key not in self._cache:
            self._cache[key] = validate_address(self.factory.get_address(owner, salt), "account")
        return self._cache[key]

    def resolve(self, owner: str, salt: int) -> AccountRecord:
        """Build an (initially undeployed) account record for ``(owner, salt)``."""
        address = self.compute_address(owner, salt)
        _logger.debug("Resolved account address", extra={"owner": owner, "salt": salt, "account": address})
        return AccountRecord(owner=validate_address(owner, "owner"), salt=salt, address=address)

    def verify(self, record: AccountRecord) -> None:
        """Re-derive the record's address from the factory and compare.

        Raises:
            AddressResolutionMismatchError: If the factory disagrees with the record
        """
        actual = validate_address(self.factory.get_address(record.owner, record.salt), "account")
        if actual != record.address:
            raise AddressResolutionMismatchError(record.address, actual, record.owner, record.salt)
