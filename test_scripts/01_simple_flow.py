#!/usr/bin/env python3
"""
AidFlow Simple Flow
Donor → Field Office → Beneficiary → Cash out, every role acting through a
sponsored smart account

Usage:
    python test_scripts/01_simple_flow.py

Environment Variables:
    PRIVATE_KEY: Admin key
    RPC_URL: JSON-RPC endpoint (default: https://sepolia.base.org)
    DEPLOYMENTS_FILE: Contract address file (default: deployments.json)
    ARTIFACTS_DIR: Where run artifacts are written (default: deployments)
    DONOR_PRIVATE_KEY, FIELD_OFFICE_PRIVATE_KEY, BENEFICIARY_PRIVATE_KEY:
        Optional owner keys; fresh keys are generated when unset
"""

import os
import sys

from aidflow import (
    AidFlowClient,
    AidFlowError,
    HandshakeAbortedError,
    RunArtifactWriter,
    configure_logging,
    load_deployments,
    load_environment,
    simple_flow,
)
from aidflow.handshake import BENEFICIARY, DONOR, FIELD_OFFICE
from aidflow.utils import from_token_units

ROLES = (DONOR, FIELD_OFFICE, BENEFICIARY)


def main() -> None:
    print("AidFlow Simple Flow\n")

    try:
        settings = load_environment()
        configure_logging(settings.log_level)
        client = AidFlowClient.from_settings(settings, load_deployments(settings.deployments_file))
        client.preflight()
    except AidFlowError as e:
        print(f"Setup failed: {e}")
        sys.exit(1)

    print(f"Network: {client.profile.name} (chain {client.profile.chain_id})")
    print(f"Admin:   {client.address}\n")

    try:
        for role in ROLES:
            binding = client.create_role(role, os.getenv(f"{role.upper()}_PRIVATE_KEY") or None)
            print(f"{role:<13} owner {binding.owner}  account {binding.address}")

        print("\nRegistering accounts with the sponsor...")
        client.register_roles()
        print("Granting field office and beneficiary permissions...")
        client.configure_roles(field_offices=[FIELD_OFFICE], beneficiaries=[BENEFICIARY])

        writer = RunArtifactWriter(settings.artifacts_dir)
        report = client.run_flow(simple_flow(client), writer=writer)
    except HandshakeAbortedError as e:
        print(f"\nFlow halted at step {e.step_id} ({e.action}): {e.__cause__}")
        sys.exit(1)
    except AidFlowError as e:
        print(f"\nError: {e}")
        sys.exit(1)

    print("\nSteps:")
    for step in report.steps:
        kind = "sponsored" if step.sponsored else "admin"
        print(f"   {step.step_id}. {step.action} [{kind}] tx {step.result.tx_hash}")

    print("\nFinal Balances:")
    for role, tokens in report.final_balances.items():
        held = ", ".join(f"{from_token_units(amount)} {symbol}" for symbol, amount in tokens.items())
        print(f"   {role:<13} {held}")

    print(f"\nSponsored operations: {report.sponsored_operations}")
    print(f"Sponsored gas cost:   {report.gas['sponsored_gas_cost']} wei")
    print(f"Artifacts:            {writer.run_dir}")


if __name__ == "__main__":
    main()
