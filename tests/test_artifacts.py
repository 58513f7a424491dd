import json
from datetime import datetime, timezone

import pytest

from aidflow.artifacts import RunArtifactWriter
from aidflow.constants import ARTIFACT_GENERATOR, ARTIFACT_VERSION
from aidflow.errors import HandshakeAbortedError
from aidflow.handshake import FIELD_MANAGER, BENEFICIARY, mutual_handshake_flow
from aidflow.utils.validation import to_token_units

from conftest import ADMIN_KEY, DEPLOYMENTS, OWNER_KEYS

FIXED = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture()
def writer(tmp_path):
    return RunArtifactWriter(tmp_path / "runs", clock=lambda: FIXED)


@pytest.fixture()
def completed(client):
    for role in (FIELD_MANAGER, BENEFICIARY):
        client.create_role(role, OWNER_KEYS[role])
    client.register_roles()
    return client


def _load(path):
    return json.loads(path.read_text())


def test_write_run_produces_all_documents(completed, writer):
    completed.run_flow(mutual_handshake_flow(completed), writer=writer)

    run_dir = writer.run_dir
    assert run_dir.name == "2026-01-02T03-04-05"
    assert sorted(p.name for p in run_dir.iterdir()) == [
        "final_report.json",
        "handshake_steps.json",
        "network_profile.json",
        "role_bindings.json",
    ]
    for path in run_dir.iterdir():
        metadata = _load(path)["metadata"]
        assert metadata["version"] == ARTIFACT_VERSION
        assert metadata["generator"] == ARTIFACT_GENERATOR
        assert metadata["description"]


def test_documents_content(completed, writer):
    completed.run_flow(mutual_handshake_flow(completed), writer=writer)
    run_dir = writer.run_dir

    profile = _load(run_dir / RunArtifactWriter.NETWORK_PROFILE)
    assert profile["chain_id"] == completed.profile.chain_id
    assert profile["max_fee_per_gas"] == str(completed.profile.max_fee_per_gas)
    assert profile["contracts"]["entry_point"] == DEPLOYMENTS.entry_point

    bindings = _load(run_dir / RunArtifactWriter.ROLE_BINDINGS)["roles"]
    assert [b["role"] for b in bindings] == [FIELD_MANAGER, BENEFICIARY]
    assert bindings[0]["smart_account"] == completed.binding(FIELD_MANAGER).address
    assert all(b["deployed"] for b in bindings)

    steps = _load(run_dir / RunArtifactWriter.HANDSHAKE_STEPS)
    assert steps["flow"] == "mutual_handshake"
    assert [s["step_id"] for s in steps["steps"]] == [1, 2, 3, 4, 5]
    assert steps["steps"][1]["result"]["gas"]["source"] == "event"

    report = _load(run_dir / RunArtifactWriter.FINAL_REPORT)["report"]
    assert report["total_steps"] == 5
    assert report["final_balances"][BENEFICIARY]["CASH"] == str(to_token_units(300))


def test_private_keys_never_written(completed, writer):
    completed.run_flow(mutual_handshake_flow(completed), writer=writer)

    secrets = [ADMIN_KEY[2:]] + [key[2:] for key in OWNER_KEYS.values()]
    for path in writer.run_dir.iterdir():
        text = path.read_text().lower()
        for secret in secrets:
            assert secret not in text


def test_aborted_run_writes_step_log_only(client, writer):
    # roles bound but never registered with the sponsor
    for role in (FIELD_MANAGER, BENEFICIARY):
        client.create_role(role, OWNER_KEYS[role])

    with pytest.raises(HandshakeAbortedError):
        client.run_flow(mutual_handshake_flow(client), writer=writer)

    assert [p.name for p in writer.run_dir.iterdir()] == ["handshake_steps.json"]
    steps = _load(writer.run_dir / RunArtifactWriter.HANDSHAKE_STEPS)["steps"]
    assert [s["action"] for s in steps] == ["Mint tokens to field manager"]


def test_run_dir_created_lazily(tmp_path):
    writer = RunArtifactWriter(tmp_path / "runs", clock=lambda: FIXED)
    assert not (tmp_path / "runs").exists()
    assert writer.run_dir.is_dir()
