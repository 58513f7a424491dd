"""Persisted run artifacts.

Each run writes a timestamped directory under the artifacts root holding
the resolved network profile, the role bindings, the ordered step log and
the final report. Every document carries a metadata block. Amounts are
serialized as decimal strings; private keys are never written.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .config import DeploymentAddresses, NetworkProfile
from .constants import ARTIFACT_GENERATOR, ARTIFACT_VERSION
from .handshake import FlowReport
from .models import HandshakeStep, RoleBinding
from .utils.logging import get_logger

__all__ = [
    "ArtifactMetadata",
    "NetworkProfileDocument",
    "RoleBindingEntry",
    "RoleBindingsDocument",
    "HandshakeStepsDocument",
    "FinalReportDocument",
    "RunArtifactWriter",
]

_logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArtifactMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    timestamp: datetime = Field(default_factory=_utcnow)
    version: str = ARTIFACT_VERSION
    generator: str = ARTIFACT_GENERATOR


class NetworkProfileDocument(BaseModel):
    metadata: ArtifactMetadata
    chain_id: int
    name: str
    network_type: str
    max_fee_per_gas: str
    max_priority_fee_per_gas: str
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    min_deployer_balance: str
    sponsor_funding_target: str
    contracts: Dict[str, str] = Field(default_factory=dict)


class RoleBindingEntry(BaseModel):
    role: str
    owner: str
    salt: int
    smart_account: str
    deployed: bool


class RoleBindingsDocument(BaseModel):
    metadata: ArtifactMetadata
    roles: List[RoleBindingEntry]


class HandshakeStepsDocument(BaseModel):
    metadata: ArtifactMetadata
    flow: str
    steps: List[Dict[str, Any]]


class FinalReportDocument(BaseModel):
    metadata: ArtifactMetadata
    report: Dict[str, Any]


class RunArtifactWriter:
    """Write one run's JSON documents into ``root/<timestamp>/``.

    The directory is created on the first write.
    """

    NETWORK_PROFILE = "network_profile.json"
    ROLE_BINDINGS = "role_bindings.json"
    HANDSHAKE_STEPS = "handshake_steps.json"
    FINAL_REPORT = "final_report.json"

    def __init__(self, root: Path, clock: Callable[[], datetime] = _utcnow):
        self.root = Path(root)
        self._clock = clock
        self._run_dir: Optional[Path] = None

    @property
    def run_dir(self) -> Path:
        if self._run_dir is None:
            stamp = self._clock().strftime("%Y-%m-%dT%H-%M-%S")
            run_dir = self.root / stamp
            run_dir.mkdir(parents=True, exist_ok=True)
            self._run_dir = run_dir
        return self._run_dir

    def _metadata(self, description: str) -> ArtifactMetadata:
        return ArtifactMetadata(description=description, timestamp=self._clock())

    def _write(self, filename: str, document: BaseModel) -> Path:
        path = self.run_dir / filename
        path.write_text(document.model_dump_json(indent=2))
        _logger.info("Artifact written", extra={"file": str(path)})
        return path

    def write_network_profile(
        self,
        profile: NetworkProfile,
        deployments: Optional[DeploymentAddresses] = None,
    ) -> Path:
        document = NetworkProfileDocument(
            metadata=self._metadata("Resolved network profile"),
            chain_id=profile.chain_id,
            name=profile.name,
            network_type=profile.network_type.value,
            max_fee_per_gas=str(profile.max_fee_per_gas),
            max_priority_fee_per_gas=str(profile.max_priority_fee_per_gas),
            call_gas_limit=profile.call_gas_limit,
            verification_gas_limit=profile.verification_gas_limit,
            pre_verification_gas=profile.pre_verification_gas,
            min_deployer_balance=str(profile.min_deployer_balance),
            sponsor_funding_target=str(profile.sponsor_funding_target),
            contracts=asdict(deployments) if deployments is not None else {},
        )
        return self._write(self.NETWORK_PROFILE, document)

    def write_role_bindings(self, bindings: Sequence[RoleBinding]) -> Path:
        document = RoleBindingsDocument(
            metadata=self._metadata("Role bindings and smart accounts"),
            roles=[
                RoleBindingEntry(
                    role=b.role,
                    owner=b.owner,
                    salt=b.account.salt,
                    smart_account=b.address,
                    deployed=b.account.deployed,
                )
                for b in bindings
            ],
        )
        return self._write(self.ROLE_BINDINGS, document)

    def write_steps(self, flow: str, steps: Sequence[HandshakeStep]) -> Path:
        document = HandshakeStepsDocument(
            metadata=self._metadata("Ordered handshake step log"),
            flow=flow,
            steps=[s.to_dict() for s in steps],
        )
        return self._write(self.HANDSHAKE_STEPS, document)

    def write_final_report(self, report: FlowReport) -> Path:
        document = FinalReportDocument(
            metadata=self._metadata("Final balances and gas summary"),
            report=report.to_dict(),
        )
        return self._write(self.FINAL_REPORT, document)

    def write_run(
        self,
        profile: NetworkProfile,
        bindings: Sequence[RoleBinding],
        report: FlowReport,
        deployments: Optional[DeploymentAddresses] = None,
    ) -> Path:
        """Write all four documents and return the run directory."""
        self.write_network_profile(profile, deployments)
        self.write_role_bindings(bindings)
        self.write_steps(report.flow, report.steps)
        self.write_final_report(report)
        return self.run_dir
