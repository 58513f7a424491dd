"""Network profiles, deployment addresses and environment settings.

Everything here is resolved once per run and passed explicitly into the
components that need it; there is no module-level mutable state.
"""

import json
import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from web3 import Web3

from .constants import DEFAULT_CONFIRMATION_TIMEOUT_SECONDS, ZERO_ADDRESS
from .errors import ConfigurationError, InvalidNetworkError
from .utils.logging import get_logger

__all__ = [
    "NetworkType",
    "NetworkProfile",
    "NETWORK_PROFILES",
    "DEFAULT_CHAIN_ID",
    "resolve_network_profile",
    "DeploymentAddresses",
    "load_deployments",
    "EnvironmentSettings",
    "load_environment",
]

_logger = get_logger(__name__)

GWEI = 10**9
ETHER = 10**18


class NetworkType(str, Enum):
    LOCAL = "local"
    TESTNET = "testnet"
    MAINNET = "mainnet"


@dataclass(frozen=True)
class NetworkProfile:
    """Gas and funding parameters for one chain.

    Attributes:
        chain_id: Chain identifier the profile was resolved for
        name: Human-readable network name
        network_type: local / testnet / mainnet
        max_fee_per_gas: EIP-1559 fee cap (wei)
        max_priority_fee_per_gas: EIP-1559 tip (wei)
        call_gas_limit: Gas for the account's execute() call
        verification_gas_limit: Gas for account deployment + validation
        pre_verification_gas: Gas paid to the submitter for calldata overhead
        min_deployer_balance: Minimum balance of the admin key (wei)
        sponsor_funding_target: Deposit the sponsor is topped up to (wei)
    """
    chain_id: int
    name: str
    network_type: NetworkType
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    min_deployer_balance: int
    sponsor_funding_target: int

    @property
    def total_gas_limit(self) -> int:
        return self.call_gas_limit + self.verification_gas_limit + self.pre_verification_gas


NETWORK_PROFILES: dict[int, NetworkProfile] = {
    31337: NetworkProfile(
        chain_id=31337,
        name="Hardhat Local",
        network_type=NetworkType.LOCAL,
        max_fee_per_gas=50 * GWEI,
        max_priority_fee_per_gas=5 * GWEI,
        call_gas_limit=800_000,
        verification_gas_limit=600_000,
        pre_verification_gas=100_000,
        min_deployer_balance=1 * ETHER,
        sponsor_funding_target=1 * ETHER,
    ),
    84532: NetworkProfile(
        chain_id=84532,
        name="Base Sepolia",
        network_type=NetworkType.TESTNET,
        max_fee_per_gas=3 * GWEI // 10,  # 0.3 gwei
        max_priority_fee_per_gas=GWEI // 10,  # 0.1 gwei
        call_gas_limit=700_000,
        verification_gas_limit=400_000,
        pre_verification_gas=80_000,
        min_deployer_balance=ETHER // 10,
        sponsor_funding_target=5 * ETHER // 100,
    ),
    8453: NetworkProfile(
        chain_id=8453,
        name="Base Mainnet",
        network_type=NetworkType.MAINNET,
        max_fee_per_gas=10 * GWEI,
        max_priority_fee_per_gas=2 * GWEI,
        call_gas_limit=1_200_000,
        verification_gas_limit=1_000_000,
        pre_verification_gas=200_000,
        min_deployer_balance=5 * ETHER,
        sponsor_funding_target=2 * ETHER,
    ),
}

DEFAULT_CHAIN_ID = 84532


def resolve_network_profile(chain_id: int, strict: bool = False) -> NetworkProfile:
    """Select the operating profile for a chain.

    Unknown chains fall back to the testnet profile with a warning; the
    returned profile always carries the observed ``chain_id`` so operation
    hashes bind to the chain actually in use.

    Args:
        chain_id: Observed chain identifier
        strict: Raise instead of degrading for unknown chains

    Raises:
        InvalidNetworkError: Unknown chain id in strict mode
    """
    profile = NETWORK_PROFILES.get(chain_id)
    if profile is not None:
        return profile
    if strict:
        raise InvalidNetworkError(chain_id)
    fallback = NETWORK_PROFILES[DEFAULT_CHAIN_ID]
    _logger.warning(
        "Unknown chain id, using default network profile",
        extra={"chain_id": chain_id, "profile": fallback.name},
    )
    return replace(fallback, chain_id=chain_id, name=f"Unknown ({chain_id})")


@dataclass(frozen=True)
class DeploymentAddresses:
    """Addresses of the external contracts a run talks to."""
    entry_point: str
    account_factory: str
    paymaster: str
    source_token: str
    destination_token: str
    aid_flow_manager: str

    @classmethod
    def from_dict(cls, data: dict) -> "DeploymentAddresses":
        """Build from a deployment record, accepting camelCase contract keys."""
        aliases = {
            "entry_point": ("entry_point", "entryPoint", "EntryPoint"),
            "account_factory": ("account_factory", "factory", "SimpleAdvancedAccountFactory"),
            "paymaster": ("paymaster", "SimpleVerifyingPaymaster"),
            "source_token": ("source_token", "rahatToken", "RahatToken"),
            "destination_token": ("destination_token", "cashToken", "CashToken"),
            "aid_flow_manager": ("aid_flow_manager", "aidFlowManager", "AidFlowManager"),
        }
        resolved = {}
        for field_name, keys in aliases.items():
            value = next((data[k] for k in keys if data.get(k)), None)
            if value is None:
                raise ConfigurationError(f"Missing address for {field_name}")
            if not Web3.is_address(value):
                raise ConfigurationError(f"Invalid address for {field_name}: {value}")
            checksummed = Web3.to_checksum_address(value)
            if checksummed == ZERO_ADDRESS:
                raise ConfigurationError(f"Zero address for {field_name}")
            resolved[field_name] = checksummed
        return cls(**resolved)


def load_deployments(path: Path) -> DeploymentAddresses:
    """Load contract addresses from a deployment JSON file.

    The file may be flat or group addresses under ``coreContracts`` /
    ``applicationContracts``.

    Raises:
        ConfigurationError: File missing, unreadable or incomplete
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"{path.name} not found. Please deploy contracts first.",
            details={"path": str(path)},
        )
    try:
        raw = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    flat: dict = {}
    for key, value in raw.items():
        if isinstance(value, dict) and key in ("coreContracts", "applicationContracts", "contracts"):
            flat.update(value)
        else:
            flat[key] = value
    return DeploymentAddresses.from_dict(flat)


class EnvironmentSettings(BaseModel):
    """Process inputs for a run, read from the environment / .env file."""

    model_config = ConfigDict(frozen=True)

    private_key: str = Field(repr=False, description="Admin/submitter private key")
    rpc_url: str = Field(default="https://sepolia.base.org", description="JSON-RPC endpoint")
    chain_id: Optional[int] = Field(
        default=None,
        description="Expected chain id; read from the RPC when absent",
    )
    deployments_file: Path = Field(default=Path("deployments.json"))
    artifacts_dir: Path = Field(default=Path("deployments"))
    confirmation_timeout: float = Field(default=DEFAULT_CONFIRMATION_TIMEOUT_SECONDS, gt=0)
    log_level: str = Field(default="INFO")


def load_environment(env_file: Optional[Path] = None) -> EnvironmentSettings:
    """Read run settings from environment variables (and an optional .env file).

    Raises:
        ConfigurationError: PRIVATE_KEY missing, or a numeric variable malformed
    """
    load_dotenv(env_file)

    private_key = os.getenv("PRIVATE_KEY", "").strip()
    if not private_key:
        raise ConfigurationError("PRIVATE_KEY is not set; cannot sign administrative transactions")

    values: dict = {"private_key": private_key}
    try:
        if os.getenv("RPC_URL"):
            values["rpc_url"] = os.environ["RPC_URL"]
        if os.getenv("CHAIN_ID"):
            values["chain_id"] = int(os.environ["CHAIN_ID"])
        if os.getenv("DEPLOYMENTS_FILE"):
            values["deployments_file"] = Path(os.environ["DEPLOYMENTS_FILE"])
        if os.getenv("ARTIFACTS_DIR"):
            values["artifacts_dir"] = Path(os.environ["ARTIFACTS_DIR"])
        if os.getenv("CONFIRMATION_TIMEOUT"):
            values["confirmation_timeout"] = float(os.environ["CONFIRMATION_TIMEOUT"])
    except ValueError as e:
        raise ConfigurationError(f"Malformed environment variable: {e}") from e
    if os.getenv("AIDFLOW_LOG_LEVEL"):
        values["log_level"] = os.environ["AIDFLOW_LOG_LEVEL"]
    return EnvironmentSettings(**values)
