"""
Tests for sponsor pre-flight checks, registration and funding.

Tests cover:
- Unregistered senders rejected before any submission
- Deposit below worst-case cost rejected before any submission
- Idempotent registration
- Deposit top-ups to the profile's funding target
"""

import pytest

from aidflow.builder import ContractCall
from aidflow.contracts import EntryPoint, Token
from aidflow.errors import SponsorNotRegisteredError, SponsorshipInsufficientError, ValidationError
from aidflow.sponsorship import SponsorshipCoordinator

from conftest import DEPLOYMENTS, OWNER_KEYS

RECIPIENT = "0x" + "cd" * 20


def _transfer():
    return ContractCall(DEPLOYMENTS.source_token, Token.TRANSFER.encode(RECIPIENT, 0), function="transfer")


@pytest.fixture()
def donor(client):
    return client.create_role("donor", OWNER_KEYS["donor"])


def test_estimate_max_cost(client, donor):
    op = client.builder.build(donor.account, _transfer())
    profile = client.profile
    assert SponsorshipCoordinator.estimate_max_cost(op) == profile.total_gas_limit * profile.max_fee_per_gas


def test_unregistered_sender_rejected_before_submission(client, donor, chain):
    chain.deposits[DEPLOYMENTS.paymaster] = 10**18

    with pytest.raises(SponsorNotRegisteredError) as exc:
        client.execute_operation("donor", _transfer())

    assert exc.value.details["sender"] == donor.address
    assert chain.handle_ops_calls == 0
    assert chain.sent == []


def test_insufficient_deposit_rejected_before_submission(client, donor, chain):
    client.sponsorship.register(donor.account)
    sent_before = len(chain.sent)
    chain.deposits[DEPLOYMENTS.paymaster] = 1

    with pytest.raises(SponsorshipInsufficientError) as exc:
        client.execute_operation("donor", _transfer())

    assert exc.value.details["deposit"] == 1
    assert exc.value.details["required"] == client.profile.total_gas_limit * client.profile.max_fee_per_gas
    assert len(chain.sent) == sent_before
    assert chain.handle_ops_calls == 0
    assert client.nonce_tracker.last_confirmed(donor.address) is None


def test_check_returns_observed_deposit(client, donor, chain):
    client.sponsorship.register(donor.account)
    chain.deposits[DEPLOYMENTS.paymaster] = 10**17
    op = client.builder.build(donor.account, _transfer())
    assert client.sponsorship.check(op) == 10**17


def test_register_is_idempotent(client, donor, chain):
    first = client.sponsorship.register(donor.account)
    second = client.sponsorship.register(donor.account)

    assert first is not None and first.success
    assert second is None
    assert len(chain.sent) == 1
    assert donor.address in chain.sponsored
    assert client.sponsorship.is_registered(donor.address)


def test_ensure_funded_tops_up_to_target(client, chain):
    chain.deposits[DEPLOYMENTS.paymaster] = 10**15
    result = client.sponsorship.ensure_funded()

    assert result is not None
    assert chain.sent[-1]["value"] == client.profile.sponsor_funding_target - 10**15
    assert client.sponsorship.deposit() == client.profile.sponsor_funding_target


def test_ensure_funded_noop_when_funded(client, chain):
    chain.deposits[DEPLOYMENTS.paymaster] = client.profile.sponsor_funding_target
    assert client.sponsorship.ensure_funded() is None
    assert chain.sent == []


def test_top_up_requires_positive_amount(client):
    with pytest.raises(ValidationError):
        client.sponsorship.top_up(0)


def test_deposit_is_read_from_entry_point(client, chain):
    chain.deposits[DEPLOYMENTS.paymaster] = 5
    assert client.sponsorship.deposit() == 5
    assert chain.rpc_calls[-1] == (DEPLOYMENTS.entry_point, EntryPoint.BALANCE_OF.selector)
