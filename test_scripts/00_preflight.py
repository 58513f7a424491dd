#!/usr/bin/env python3
"""
AidFlow Preflight - Validate network, admin balance and sponsor deposit
Run this FIRST before any flow

Usage:
    python test_scripts/00_preflight.py

Environment Variables:
    PRIVATE_KEY: Admin key (pays administrative transactions, submits operations)
    RPC_URL: JSON-RPC endpoint (default: https://sepolia.base.org)
    CHAIN_ID: Expected chain id (optional)
    DEPLOYMENTS_FILE: Contract address file (default: deployments.json)
"""

import sys

from web3 import Web3

from aidflow import AidFlowClient, AidFlowError, configure_logging, load_deployments, load_environment


def main() -> None:
    print("AidFlow Preflight\n")

    try:
        settings = load_environment()
        configure_logging(settings.log_level)
        deployments = load_deployments(settings.deployments_file)
        client = AidFlowClient.from_settings(settings, deployments)
    except AidFlowError as e:
        print(f"Setup failed: {e}")
        sys.exit(1)

    profile = client.profile
    print(f"Network:   {profile.name} (chain {profile.chain_id})")
    print(f"Admin:     {client.address}")
    print(f"EntryPoint {deployments.entry_point}")
    print(f"Paymaster  {deployments.paymaster}")
    print()

    try:
        balance = client.preflight()
    except AidFlowError as e:
        print(f"Preflight failed: {e}")
        print(f"Fund {client.address} with at least {Web3.from_wei(profile.min_deployer_balance, 'ether')} ETH")
        sys.exit(1)

    deposit = client.sponsorship.deposit()
    print(f"Admin balance:   {Web3.from_wei(balance, 'ether')} ETH")
    print(f"Sponsor deposit: {Web3.from_wei(deposit, 'ether')} ETH")
    print(f"Funding target:  {Web3.from_wei(profile.sponsor_funding_target, 'ether')} ETH")
    if deposit < profile.sponsor_funding_target:
        print("\nSponsor deposit is below target; the flow scripts top it up on registration.")

    print("\nPreflight complete! Next steps:")
    print("1. Run: python test_scripts/01_simple_flow.py")
    print("2. Run: python test_scripts/02_mutual_handshake.py")


if __name__ == "__main__":
    main()
