#!/usr/bin/env python3
"""
AidFlow Mutual Handshake
Field Manager assigns tokens to a Beneficiary; the cash-out is confirmed by
both sides (approve, pull) before the admin mints the cash token

Usage:
    python test_scripts/02_mutual_handshake.py

Environment Variables:
    PRIVATE_KEY: Admin key
    RPC_URL: JSON-RPC endpoint (default: https://sepolia.base.org)
    DEPLOYMENTS_FILE: Contract address file (default: deployments.json)
    ARTIFACTS_DIR: Where run artifacts are written (default: deployments)
    FIELD_MANAGER_PRIVATE_KEY, BENEFICIARY_PRIVATE_KEY:
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
    mutual_handshake_flow,
)
from aidflow.handshake import BENEFICIARY, FIELD_MANAGER
from aidflow.utils import from_token_units


def main() -> None:
    print("AidFlow Mutual Handshake\n")

    try:
        settings = load_environment()
        configure_logging(settings.log_level)
        client = AidFlowClient.from_settings(settings, load_deployments(settings.deployments_file))
        client.preflight()
    except AidFlowError as e:
        print(f"Setup failed: {e}")
        sys.exit(1)

    writer = RunArtifactWriter(settings.artifacts_dir)
    try:
        for role in (FIELD_MANAGER, BENEFICIARY):
            binding = client.create_role(role, os.getenv(f"{role.upper()}_PRIVATE_KEY") or None)
            print(f"{role:<13} account {binding.address}")
        client.register_roles()
        report = client.run_flow(mutual_handshake_flow(client), writer=writer)
    except HandshakeAbortedError as e:
        print(f"\nHandshake halted at step {e.step_id} ({e.action}): {e.__cause__}")
        print(f"Recorded steps: {writer.run_dir}")
        sys.exit(1)
    except AidFlowError as e:
        print(f"\nError: {e}")
        sys.exit(1)

    print("\nFinal Balances:")
    for role, tokens in report.final_balances.items():
        held = ", ".join(f"{from_token_units(amount)} {symbol}" for symbol, amount in tokens.items())
        print(f"   {role:<13} {held}")

    gas = report.gas
    print(f"\nSponsored operations: {gas['sponsored_operations']} ({gas['accounts_deployed']} accounts deployed)")
    print(f"Sponsor spend:        {gas['sponsor_spend']} wei")
    if gas["estimated_operations"]:
        print(f"Note: {gas['estimated_operations']} gas figures are receipt estimates")
    print(f"Artifacts:            {writer.run_dir}")


if __name__ == "__main__":
    main()
