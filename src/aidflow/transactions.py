"""Plain transactions sent by the administrative key.

Administrative steps (mints, role configuration, sponsor registration and
deposits) and the outer ``handleOps`` submission are ordinary EIP-1559
transactions signed by the admin key. This module owns nonce handling,
fee fields, signing, broadcast and bounded receipt waiting for them.
"""

from typing import Any, Dict, Optional

from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TimeExhausted
from web3.types import TxParams, TxReceipt

from .config import NetworkProfile
from .constants import (
    ABI_SELECTOR_LENGTH,
    ABI_WORD_LENGTH,
    DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
    DEFAULT_GAS_LIMIT,
    GAS_ESTIMATION_BUFFER,
    MAX_GAS_LIMIT,
    RECEIPT_POLL_LATENCY_SECONDS,
    REVERT_SELECTOR,
)
from .errors import RpcError, SubmissionTimeoutError, TransactionRevertedError, ValidationError
from .models import AdminTxResult
from .utils.logging import get_logger

__all__ = ["AdminTransactor", "decode_revert_reason"]

_logger = get_logger(__name__)


def decode_revert_reason(raw: Any) -> Optional[str]:
    """Decode a Solidity ``Error(string)`` payload.

    Args:
        raw: Hex string or bytes of revert data

    Returns:
        Decoded revert reason string, or None if decoding fails
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = "0x" + bytes(raw).hex()
    if not isinstance(raw, str) or not raw.startswith(REVERT_SELECTOR) or len(raw) < 10:
        return None
    try:
        data = bytes.fromhex(raw[2:])
        # offset: 4 bytes selector + 32 bytes offset + 32 bytes length
        if len(data) >= ABI_SELECTOR_LENGTH + ABI_WORD_LENGTH + ABI_WORD_LENGTH:
            offset = ABI_SELECTOR_LENGTH + ABI_WORD_LENGTH
            strlen = int.from_bytes(data[offset : offset + ABI_WORD_LENGTH], "big")
            reason_start = offset + ABI_WORD_LENGTH
            reason_bytes = data[reason_start : reason_start + strlen]
            return reason_bytes.decode(errors="ignore")
    except (ValueError, UnicodeDecodeError):
        return None
    return None


class AdminTransactor:
    """Sign, send and confirm transactions from the administrative key.

    Args:
        w3: Web3 connection
        account: Administrative signing account
        profile: Network profile providing fee caps and chain id
        timeout: Confirmation timeout in seconds; no retry after it elapses
        manual_nonce: Track the account nonce locally instead of asking the node
    """

    def __init__(
        self,
        w3: Web3,
        account: LocalAccount,
        profile: NetworkProfile,
        timeout: float = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
        manual_nonce: bool = False,
    ):
        self.w3 = w3
        self.account = account
        self.profile = profile
        self.timeout = timeout
        self.manual_nonce = manual_nonce
        self._next_nonce: Optional[int] = None

    @property
    def address(self) -> str:
        return self.account.address

    def balance(self) -> int:
        return self.w3.eth.get_balance(self.address)

    def transact(
        self,
        to: str,
        data: bytes,
        value: int = 0,
        gas: Optional[int] = None,
        description: str = "",
    ) -> AdminTxResult:
        """Send one transaction and wait for a successful receipt.

        Raises:
            SubmissionTimeoutError: No receipt within ``timeout``
            TransactionRevertedError: Receipt status is not 1
            RpcError: Gas estimation, signing or broadcast failed
        """
        receipt = self.send_and_wait(to, data, value=value, gas=gas, description=description)
        tx_hash = Web3.to_hex(receipt["transactionHash"])
        if receipt["status"] != 1:
            raise TransactionRevertedError(f"Transaction failed: {description or tx_hash}", tx_hash=tx_hash)
        result = self.receipt_to_result(receipt)
        _logger.info(
            "Admin transaction confirmed",
            extra={"description": description, "tx_hash": tx_hash, "gas_used": result.gas_used},
        )
        return result

    def send_and_wait(
        self,
        to: str,
        data: bytes,
        value: int = 0,
        gas: Optional[int] = None,
        description: str = "",
    ) -> TxReceipt:
        """Send one transaction and return its receipt whatever its status."""
        if gas is None:
            gas = self.estimate_gas(to, data, value)
        tx: TxParams = {"to": to, "data": HexBytes(data), "value": value, **self._tx_meta(gas)}
        tx_hash = self._send(tx)
        _logger.debug("Transaction broadcast", extra={"description": description, "tx_hash": Web3.to_hex(tx_hash)})
        return self.wait_for_receipt(tx_hash)

    def wait_for_receipt(self, tx_hash: HexBytes) -> TxReceipt:
        try:
            return self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.timeout, poll_latency=RECEIPT_POLL_LATENCY_SECONDS
            )
        except TimeExhausted as e:
            raise SubmissionTimeoutError(
                f"Transaction not confirmed within {self.timeout}s",
                tx_hash=Web3.to_hex(tx_hash),
                details={"timeout": self.timeout},
            ) from e

    def estimate_gas(self, to: str, data: bytes, value: int = 0, buffer: float = GAS_ESTIMATION_BUFFER) -> int:
        """Estimate gas with a safety buffer, capped at MAX_GAS_LIMIT."""
        try:
            base = self.w3.eth.estimate_gas(
                {"from": self.address, "to": to, "data": HexBytes(data), "value": value}
            )
        except Exception as e:
            raise self._rpc_error(e) from e
        return min(int(base * buffer), MAX_GAS_LIMIT)

    @staticmethod
    def receipt_to_result(receipt: TxReceipt) -> AdminTxResult:
        gas_used = receipt["gasUsed"]
        gas_price = receipt.get("effectiveGasPrice") or 0
        return AdminTxResult(
            tx_hash=Web3.to_hex(receipt["transactionHash"]),
            gas_used=gas_used,
            gas_cost=gas_used * gas_price,
            success=receipt["status"] == 1,
        )

    def _send(self, tx: TxParams) -> HexBytes:
        try:
            signed = self.account.sign_transaction(tx)
            return self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            if self.manual_nonce:
                self._next_nonce = None
            raise self._rpc_error(e) from e

    def _tx_meta(self, gas: Optional[int] = None) -> Dict[str, Any]:
        """Build transaction metadata with fee caps from the network profile."""
        if self.manual_nonce:
            if self._next_nonce is None:
                self._next_nonce = self.w3.eth.get_transaction_count(self.address, "pending")
            nonce = self._next_nonce
            self._next_nonce += 1
        else:
            nonce = self.w3.eth.get_transaction_count(self.address, "pending")

        gas = gas or DEFAULT_GAS_LIMIT
        if gas > MAX_GAS_LIMIT:
            raise ValidationError(f"Gas limit ({gas}) exceeds maximum ({MAX_GAS_LIMIT})")
        return {
            "from": self.address,
            "nonce": nonce,
            "chainId": self.profile.chain_id,
            "gas": gas,
            "maxFeePerGas": self.profile.max_fee_per_gas,
            "maxPriorityFeePerGas": self.profile.max_priority_fee_per_gas,
        }

    @staticmethod
    def _rpc_error(e: Exception) -> RpcError:
        reason = None
        if e.args and isinstance(e.args[0], dict):
            reason = e.args[0].get("message") or e.args[0].get("reason")
            data = e.args[0].get("data")
            if isinstance(data, str):
                reason = decode_revert_reason(data) or reason
        return RpcError(reason or str(e))
