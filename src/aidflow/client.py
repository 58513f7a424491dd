"""AidFlow client.

This module provides the AidFlowClient class, which wires the operation
pipeline (resolver, builder, signer, sponsorship, submitter) for one run
against a set of deployed contracts and exposes the role-level actions the
handshake flows are built from.

Example:
    >>> from aidflow import AidFlowClient, load_deployments, load_environment, simple_flow
    >>> settings = load_environment()
    >>> client = AidFlowClient.from_settings(settings, load_deployments(settings.deployments_file))
    >>> client.preflight()
    >>> for role in ("donor", "field_office", "beneficiary"):
    ...     client.create_role(role)
    >>> client.register_roles()
    >>> client.configure_roles(field_offices=["field_office"], beneficiaries=["beneficiary"])
    >>> report = client.run_flow(simple_flow(client))
"""

from typing import Dict, Iterable, List, Optional, Sequence, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .accountant import GasAccountant
from .address_resolver import AccountAddressResolver
from .artifacts import RunArtifactWriter
from .builder import ContractCall, NonceTracker, OperationBuilder
from .config import DeploymentAddresses, EnvironmentSettings, NetworkProfile, resolve_network_profile
from .constants import (
    DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
    DESTINATION_TOKEN_SYMBOL,
    PROVIDER_TIMEOUT_SECONDS,
    SOURCE_TOKEN_SYMBOL,
)
from .contracts import AccountFactory, AidFlowManager, EntryPoint, Paymaster, Token
from .errors import ConfigurationError, HandshakeAbortedError, InsufficientBalanceError, ValidationError
from .handshake import Flow, FlowReport, HandshakeOrchestrator
from .models import AdminTxResult, OperationResult, RoleBinding
from .signer import OperationSigner, SignatureScheme, SponsorSigner
from .sponsorship import SponsorshipCoordinator
from .submitter import OperationSubmitter
from .transactions import AdminTransactor
from .utils.logging import get_logger
from .utils.validation import load_account, validate_address, validate_amount

__all__ = ["AidFlowClient"]

_logger = get_logger(__name__)


class AidFlowClient:
    """Sponsored-operation client for one run against one deployment.

    Args:
        deployments: Addresses of the external contracts
        private_key: Administrative key; pays admin transactions and submits operations
        rpc_url: JSON-RPC endpoint (ignored when ``web3`` is given)
        web3: Pre-built Web3 instance
        chain_id: Expected chain id; a different chain reported by the RPC is an error
        strict_network: Reject unknown chains instead of using the default profile
        confirmation_timeout: Seconds to wait for each receipt
        sponsor_key: Optional paymaster signing key; when set every operation
            carries a time-bounded sponsor signature
        signature_scheme: How owners sign the operation hash
        verify_user_op_hash: Cross-check every local hash with ``getUserOpHash``
        manual_nonce: Track the admin account nonce locally
        timeout: HTTP provider timeout in seconds
    """

    def __init__(
        self,
        deployments: DeploymentAddresses,
        private_key: str,
        rpc_url: Optional[str] = None,
        web3: Optional[Web3] = None,
        chain_id: Optional[int] = None,
        strict_network: bool = False,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT_SECONDS,
        sponsor_key: Optional[str] = None,
        signature_scheme: SignatureScheme = SignatureScheme.EIP191,
        verify_user_op_hash: bool = False,
        manual_nonce: bool = False,
        timeout: int = PROVIDER_TIMEOUT_SECONDS,
    ):
        if web3 is None and not rpc_url:
            raise ConfigurationError("rpc_url is required when no Web3 instance is given")
        # Configure HTTPProvider with timeout so a hung node cannot stall the run
        self.w3 = web3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.account: LocalAccount = load_account(private_key)
        self.deployments = deployments

        observed = self.w3.eth.chain_id
        if chain_id is not None and chain_id != observed:
            raise ConfigurationError(
                f"RPC reports chain id {observed}, expected {chain_id}",
                details={"expected": chain_id, "observed": observed},
            )
        self.profile: NetworkProfile = resolve_network_profile(observed, strict=strict_network)

        self.entry_point = EntryPoint(self.w3, deployments.entry_point)
        self.factory = AccountFactory(self.w3, deployments.account_factory)
        self.paymaster = Paymaster(self.w3, deployments.paymaster)
        self.source_token = Token(self.w3, deployments.source_token, SOURCE_TOKEN_SYMBOL)
        self.destination_token = Token(self.w3, deployments.destination_token, DESTINATION_TOKEN_SYMBOL)
        self.manager = AidFlowManager(self.w3, deployments.aid_flow_manager)

        self.transactor = AdminTransactor(
            self.w3, self.account, self.profile, timeout=confirmation_timeout, manual_nonce=manual_nonce
        )
        self.resolver = AccountAddressResolver(self.factory)
        self.nonce_tracker = NonceTracker()
        self.accountant = GasAccountant()
        self.builder = OperationBuilder(
            self.w3, self.entry_point, self.resolver, self.profile, self.paymaster.address, self.nonce_tracker
        )
        self.signer = OperationSigner(
            self.entry_point.address,
            self.profile.chain_id,
            scheme=signature_scheme,
            entry_point=self.entry_point if verify_user_op_hash else None,
        )
        self.sponsor_signer: Optional[SponsorSigner] = None
        if sponsor_key:
            self.sponsor_signer = SponsorSigner(
                self.paymaster.address, load_account(sponsor_key), self.profile.chain_id, scheme=signature_scheme
            )
        self.sponsorship = SponsorshipCoordinator(self.entry_point, self.paymaster, self.transactor, self.profile)
        self.submitter = OperationSubmitter(
            self.transactor, self.entry_point, self.sponsorship, self.nonce_tracker, accountant=self.accountant
        )
        self._roles: Dict[str, RoleBinding] = {}

        _logger.info(
            "Client initialised",
            extra={"chain_id": self.profile.chain_id, "network": self.profile.name, "admin": self.address},
        )

    @classmethod
    def from_settings(
        cls,
        settings: EnvironmentSettings,
        deployments: DeploymentAddresses,
        **kwargs,
    ) -> "AidFlowClient":
        """Build a client from environment settings."""
        return cls(
            deployments,
            settings.private_key,
            rpc_url=settings.rpc_url,
            chain_id=settings.chain_id,
            confirmation_timeout=settings.confirmation_timeout,
            **kwargs,
        )

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def roles(self) -> List[RoleBinding]:
        return list(self._roles.values())

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def preflight(self) -> int:
        """Check the admin key holds the profile's minimum balance.

        Returns:
            The observed balance in wei

        Raises:
            InsufficientBalanceError: Balance below ``min_deployer_balance``
        """
        balance = self.transactor.balance()
        if balance < self.profile.min_deployer_balance:
            raise InsufficientBalanceError(self.address, balance, self.profile.min_deployer_balance)
        _logger.info("Preflight passed", extra={"admin": self.address, "balance": balance})
        return balance

    def create_role(
        self,
        role: str,
        owner: Union[str, LocalAccount, None] = None,
        salt: Optional[int] = None,
    ) -> RoleBinding:
        """Bind a role to an owner key and its counterfactual account.

        Args:
            role: Role name, unique within the run
            owner: Owner key (hex private key or account); a fresh key when omitted
            salt: Deployment salt; defaults to the role's position in the run
        """
        if role in self._roles:
            raise ValidationError(f"role {role!r} already bound")
        if owner is None:
            owner_key = Account.create()
        elif isinstance(owner, str):
            owner_key = load_account(owner)
        else:
            owner_key = owner
        salt = len(self._roles) if salt is None else validate_amount(salt, "salt")
        if any(b.account.salt == salt and b.owner == owner_key.address for b in self._roles.values()):
            raise ValidationError(f"salt {salt} already used by owner {owner_key.address}")

        record = self.resolver.resolve(owner_key.address, salt)
        if len(self.w3.eth.get_code(record.address)) > 0:
            record.mark_deployed()
        binding = RoleBinding(role=role, owner_key=owner_key, account=record)
        self._roles[role] = binding
        _logger.info(
            "Role bound",
            extra={"role": role, "owner": record.owner, "account": record.address, "deployed": record.deployed},
        )
        return binding

    def binding(self, role: str) -> RoleBinding:
        try:
            return self._roles[role]
        except KeyError:
            raise ValidationError(f"role {role!r} is not bound") from None

    def register_roles(self, roles: Optional[Iterable[str]] = None) -> List[AdminTxResult]:
        """Register role accounts with the sponsor and make sure its deposit is funded."""
        results = []
        for role in roles or list(self._roles):
            result = self.sponsorship.register(self.binding(role).account)
            if result is not None:
                results.append(result)
        funding = self.sponsorship.ensure_funded()
        if funding is not None:
            results.append(funding)
        for result in results:
            self.accountant.record_admin(result)
        return results

    def configure_roles(
        self,
        field_offices: Sequence[str] = (),
        beneficiaries: Sequence[str] = (),
    ) -> List[AdminTxResult]:
        """Grant manager-contract permissions to role accounts."""
        results = []
        for role in field_offices:
            account = self.binding(role).address
            results.append(
                self.transactor.transact(
                    self.manager.address,
                    self.manager.encode_set_field_office(account, True),
                    description=f"setFieldOffice({account})",
                )
            )
        for role in beneficiaries:
            account = self.binding(role).address
            results.append(
                self.transactor.transact(
                    self.manager.address,
                    self.manager.encode_set_beneficiary(account, True),
                    description=f"setBeneficiary({account})",
                )
            )
        for result in results:
            self.accountant.record_admin(result)
        return results

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def execute_operation(self, role: str, call: ContractCall) -> OperationResult:
        """Build, sign and submit one sponsored operation from ``role``'s account."""
        binding = self.binding(role)
        op = self.builder.build(binding.account, call)
        if self.sponsor_signer is not None:
            op = self.sponsor_signer.apply(op)
        op = self.signer.sign(op, binding.owner_key)
        (result,) = self.submitter.submit([op], [binding.account])
        return result

    def admin_mint(self, token: Token, to: str, amount: int) -> AdminTxResult:
        """Mint ``amount`` base units of ``token`` to ``to`` from the admin key."""
        to = validate_address(to, "to")
        validate_amount(amount)
        return self.transactor.transact(
            token.address, token.encode_mint(to, amount), description=f"mint {token.symbol} to {to}"
        )

    def token_balances(self, roles: Optional[Sequence[str]] = None) -> Dict[str, Dict[str, int]]:
        """On-chain balances ``{role: {symbol: amount}}`` of both tokens."""
        balances: Dict[str, Dict[str, int]] = {}
        for role in roles or list(self._roles):
            address = self.binding(role).address
            balances[role] = {
                token.symbol: token.balance_of(address) for token in (self.source_token, self.destination_token)
            }
        return balances

    def run_flow(self, flow: Flow, writer: Optional[RunArtifactWriter] = None) -> FlowReport:
        """Run a flow to completion and optionally persist the run artifacts.

        Raises:
            HandshakeAbortedError: A step failed; the flow halted there
        """
        orchestrator = HandshakeOrchestrator(balance_reader=self.token_balances, accountant=self.accountant)
        try:
            report = orchestrator.run(flow)
        except HandshakeAbortedError:
            if writer is not None:
                writer.write_steps(flow.name, orchestrator.steps)
            raise
        if writer is not None:
            writer.write_run(
                self.profile, [self.binding(r) for r in flow.roles], report, deployments=self.deployments
            )
        return report
