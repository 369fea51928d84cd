import json
import os
import stat

import pytest

from threshold.credentials import (
    COMBINED_PUBKEY_FILE,
    CredentialError,
    KeyHolderCredential,
    load_credentials_dir,
    write_ceremony_output,
)


def test_ceremony_output_files(tmp_path, dkg_result):
    written = write_ceremony_output(dkg_result, tmp_path / "keys")
    names = sorted(p.name for p in written)
    assert names == [COMBINED_PUBKEY_FILE, "kh1.json", "kh2.json", "kh3.json"]

    with open(tmp_path / "keys" / COMBINED_PUBKEY_FILE) as f:
        summary = json.load(f)
    assert summary['combined_pubkey'] == dkg_result.combined_public_key.hex()
    assert summary['m'] == 3 and summary['t'] == 2


@pytest.mark.skipif(os.name != "posix", reason="permission bits are POSIX only")
def test_credential_files_are_owner_only(tmp_path, dkg_result):
    write_ceremony_output(dkg_result, tmp_path)
    mode = stat.S_IMODE(os.stat(tmp_path / "kh1.json").st_mode)
    assert mode == 0o600


def test_credentials_round_trip(tmp_path, dkg_result):
    write_ceremony_output(dkg_result, tmp_path)
    loaded = load_credentials_dir(tmp_path)
    assert [c.index for c in loaded] == [1, 2, 3]
    for credential in loaded:
        share = dkg_result.share_for(credential.index)
        assert credential.share.secret_scalar == share.secret_scalar
        assert credential.share.commitment == share.commitment
        assert credential.identity.public_key == dkg_result.identity_for(credential.index).public_key


def test_mismatched_identity_rejected(credentials):
    data = credentials[0].to_dict()
    data['ed_pk'] = credentials[1].identity.public_key.hex()
    with pytest.raises(CredentialError):
        KeyHolderCredential.from_dict(data)


@pytest.mark.parametrize("ed_pk", [123, None, ["00"]])
def test_non_string_public_key_rejected(credentials, ed_pk):
    data = credentials[0].to_dict()
    data['ed_pk'] = ed_pk
    with pytest.raises(CredentialError):
        KeyHolderCredential.from_dict(data)


def test_missing_fields_rejected(credentials):
    data = credentials[0].to_dict()
    del data['sk']
    with pytest.raises(CredentialError):
        KeyHolderCredential.from_dict(data)


def test_invalid_json_rejected(tmp_path):
    path = tmp_path / "kh1.json"
    path.write_text("{not json")
    with pytest.raises(CredentialError):
        KeyHolderCredential.load(path)
