from .accountant import GasAccountant
from .address_resolver import AccountAddressResolver
from .artifacts import RunArtifactWriter
from .builder import ContractCall, NonceTracker, OperationBuilder
from .client import AidFlowClient
from .config import (
    DEFAULT_CHAIN_ID,
    NETWORK_PROFILES,
    DeploymentAddresses,
    EnvironmentSettings,
    NetworkProfile,
    NetworkType,
    load_deployments,
    load_environment,
    resolve_network_profile,
)
from .constants import (
    DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
    DEFAULT_HANDLE_OPS_GAS_LIMIT,
    DESTINATION_TOKEN_SYMBOL,
    SOURCE_TOKEN_SYMBOL,
)
from .contracts import AccountFactory, AidFlowManager, EntryPoint, Paymaster, SmartAccount, Token
from .errors import (
    AddressResolutionMismatchError,
    AidFlowError,
    ConfigurationError,
    HandshakeAbortedError,
    InsufficientBalanceError,
    InvalidNetworkError,
    LedgerOverdraftError,
    NonceFetchFailedError,
    RpcError,
    SponsorNotRegisteredError,
    SponsorshipInsufficientError,
    SubmissionTimeoutError,
    TransactionRevertedError,
    ValidationError,
)
from .handshake import (
    BENEFICIARY,
    DONOR,
    FIELD_MANAGER,
    FIELD_OFFICE,
    Flow,
    FlowReport,
    FlowStep,
    HandshakeOrchestrator,
    MutualFlowAmounts,
    SimpleFlowAmounts,
    mutual_handshake_flow,
    simple_flow,
)
from .ledger import RunningLedger
from .models import (
    AccountRecord,
    AdminTxResult,
    GasEstimated,
    GasFromEvent,
    HandshakeStep,
    OperationResult,
    RoleBinding,
    StepKind,
    UserOperation,
)
from .signer import OperationSigner, SignatureScheme, SponsorSigner, user_op_hash
from .sponsorship import SponsorshipCoordinator
from .submitter import OperationSubmitter
from .transactions import AdminTransactor
from .utils.logging import configure_logging, get_logger

__all__ = [
    # Client
    "AidFlowClient",
    # Config
    "NetworkType",
    "NetworkProfile",
    "NETWORK_PROFILES",
    "DEFAULT_CHAIN_ID",
    "resolve_network_profile",
    "DeploymentAddresses",
    "load_deployments",
    "EnvironmentSettings",
    "load_environment",
    # Contracts
    "EntryPoint",
    "AccountFactory",
    "SmartAccount",
    "Paymaster",
    "Token",
    "AidFlowManager",
    # Pipeline
    "AccountAddressResolver",
    "ContractCall",
    "NonceTracker",
    "OperationBuilder",
    "SignatureScheme",
    "OperationSigner",
    "SponsorSigner",
    "user_op_hash",
    "SponsorshipCoordinator",
    "OperationSubmitter",
    "AdminTransactor",
    "GasAccountant",
    # Logging
    "configure_logging",
    "get_logger",
    # Flows
    "DONOR",
    "FIELD_OFFICE",
    "FIELD_MANAGER",
    "BENEFICIARY",
    "Flow",
    "FlowStep",
    "FlowReport",
    "SimpleFlowAmounts",
    "MutualFlowAmounts",
    "HandshakeOrchestrator",
    "simple_flow",
    "mutual_handshake_flow",
    "RunningLedger",
    "RunArtifactWriter",
    # Models
    "UserOperation",
    "AccountRecord",
    "RoleBinding",
    "GasFromEvent",
    "GasEstimated",
    "OperationResult",
    "AdminTxResult",
    "StepKind",
    "HandshakeStep",
    # Errors
    "AidFlowError",
    "ConfigurationError",
    "ValidationError",
    "InsufficientBalanceError",
    "InvalidNetworkError",
    "AddressResolutionMismatchError",
    "NonceFetchFailedError",
    "SponsorshipInsufficientError",
    "SponsorNotRegisteredError",
    "SubmissionTimeoutError",
    "TransactionRevertedError",
    "RpcError",
    "LedgerOverdraftError",
    "HandshakeAbortedError",
    # Constants
    "DEFAULT_CONFIRMATION_TIMEOUT_SECONDS",
    "DEFAULT_HANDLE_OPS_GAS_LIMIT",
    "SOURCE_TOKEN_SYMBOL",
    "DESTINATION_TOKEN_SYMBOL",
]

__version__ = "0.1.0"
