import json

import pytest

from ballot.elgamal import encrypt
from ballot.issuance import DistributorApproval
from curves.ed25519 import Ed25519Keypair
from curves.secp256k1 import Point
from main import main
from threshold.shares import DecryptionShareRecord


@pytest.fixture(autouse=True)
def _workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)


def _run_dkg(keys):
    assert main(['dkg', '--m', '3', '--t', '2', '--output', str(keys)]) == 0
    with open(keys / "combined_pubkey.json") as f:
        return Point.from_hex(json.load(f)['combined_pubkey'])


def _write_ballots(path, public_key, votes):
    with open(path, 'w') as f:
        json.dump([encrypt(v, public_key, 2).to_hex() for v in votes], f)


def test_dkg_writes_credentials(tmp_path, capsys):
    keys = tmp_path / "keys"
    public_key = _run_dkg(keys)
    assert sorted(p.name for p in keys.glob("kh*.json")) == ["kh1.json", "kh2.json", "kh3.json"]
    assert public_key.hex() in capsys.readouterr().out


def test_dkg_rejects_bad_threshold(tmp_path):
    assert main(['dkg', '--m', '2', '--t', '3', '--output', str(tmp_path / "keys")]) == 1


def test_distributor_generates_key(capsys):
    assert main(['distributor']) == 0
    out = capsys.readouterr().out
    assert "sk:" in out and "pk:" in out


def test_distributor_signs_issue_message(tmp_path):
    keypair = Ed25519Keypair.generate()
    cast_pk = Ed25519Keypair.generate().public_key.hex()
    keys = tmp_path / "keys"

    assert main(['distributor', '--dist-sk', keypair.seed_hex(), '--cast-pk', cast_pk,
                 '--eid', '3', '--keys', str(keys)]) == 0

    with open(keys / f"dist_sig_{cast_pk[:8]}.json") as f:
        approval = DistributorApproval.from_dict(json.load(f))
    assert approval.verify()
    assert approval.eid == 3
    assert approval.nf_issue == bytes(32)
    assert approval.distributor_public_key == keypair.public_key


def test_distributor_rejects_short_cast_key():
    assert main(['distributor', '--dist-sk', "11" * 32, '--cast-pk', "ab"]) == 1


def test_post_share_then_finalize(tmp_path, capsys):
    keys = tmp_path / "keys"
    public_key = _run_dkg(keys)
    _write_ballots(keys / "ballots.json", public_key, [1, 0, 1])

    assert main(['post-share', '--kh', str(keys / "kh2.json"), '--eid', '0']) == 0
    with open(keys / "shares_kh2.json") as f:
        data = json.load(f)
    record = DecryptionShareRecord.from_dict(data)
    assert record.kh_index == 2
    assert len(record.pairs) == 3
    assert record.verify_signature(0)

    assert main(['post-share', '--finalize', '--kh-dir', str(keys), '--t', '2',
                 '--options-count', '2', '--eid', '0']) == 0
    with open(keys / "tally.json") as f:
        tally = json.load(f)
    assert tally['counts'] == [1, 2]
    assert tally['index_set'] == [1, 2]
    assert "[1, 2]" in capsys.readouterr().out


def test_finalize_needs_threshold_credentials(tmp_path):
    keys = tmp_path / "keys"
    _run_dkg(keys)
    (keys / "kh2.json").unlink()
    (keys / "kh3.json").unlink()
    assert main(['post-share', '--finalize', '--kh-dir', str(keys), '--t', '2',
                 '--options-count', '2']) == 1


def test_post_share_missing_file_fails(tmp_path):
    assert main(['post-share', '--kh', str(tmp_path / "missing.json")]) == 1


def test_post_share_malformed_credential_fails(tmp_path):
    keys = tmp_path / "keys"
    _run_dkg(keys)
    path = keys / "kh1.json"
    data = json.loads(path.read_text())
    data['ed_pk'] = 123
    path.write_text(json.dumps(data))
    assert main(['post-share', '--kh', str(path), '--eid', '0']) == 1


def test_demo_runs_end_to_end(tmp_path):
    assert main(['demo', '--voters', '3', '--options', '2', '--m', '3', '--t', '2']) == 0
    assert (tmp_path / "results" / "demo_results.json").exists()
    assert (tmp_path / "results" / "performance_report.txt").exists()
