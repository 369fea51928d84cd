import struct

import pytest

from curves import secp256k1
from curves.ed25519 import Ed25519Keypair
from curves.hashing import shares_msg_hash
from curves.secp256k1 import Point
from threshold.decryption import (
    audit_share_record,
    build_share_record,
    partial_decrypt,
    require_valid_signature,
)
from threshold.errors import ShareBlobError, SignatureVerificationFailure
from threshold.proofs import DLEQProof, prove_dleq, verify_dleq
from threshold.shares import DecryptionShareRecord, deserialise_shares, serialise_shares


def _pairs(n):
    secret = 77
    pairs = []
    for i in range(1, n + 1):
        c1 = Point.base_mul(1000 + i)
        pairs.append((c1, c1 * secret))
    return pairs


def test_blob_layout():
    pairs = _pairs(1)
    blob = serialise_shares(pairs)
    c1, d = pairs[0]
    assert blob == (struct.pack("<I", 1)
                    + struct.pack("<I", 33) + c1.to_bytes()
                    + struct.pack("<I", 33) + d.to_bytes())


def test_blob_round_trip():
    pairs = _pairs(3)
    assert deserialise_shares(serialise_shares(pairs)) == pairs
    assert deserialise_shares(serialise_shares([])) == []


def test_truncated_blob_rejected():
    blob = serialise_shares(_pairs(2))
    for cut in (2, 10, len(blob) - 1):
        with pytest.raises(ShareBlobError):
            deserialise_shares(blob[:cut])


def test_trailing_bytes_rejected():
    with pytest.raises(ShareBlobError):
        deserialise_shares(serialise_shares(_pairs(1)) + b"\x00")


def test_invalid_point_in_blob_rejected():
    blob = bytearray(serialise_shares(_pairs(1)))
    blob[8] = 0x05
    with pytest.raises(ShareBlobError):
        deserialise_shares(bytes(blob))


def test_share_record_signature(credentials):
    c1_points = [c1 for c1, _ in _pairs(2)]
    record = build_share_record(4, credentials[0], c1_points)
    assert record.kh_index == 1
    assert record.verify_signature(4)
    assert not record.verify_signature(5)
    require_valid_signature(record, 4)

    c1, d = record.pairs[0]
    record.pairs[0] = (c1, d + Point.generator())
    assert not record.verify_signature(4)
    with pytest.raises(SignatureVerificationFailure):
        require_valid_signature(record, 4)


def test_share_record_dict_round_trip(credentials):
    record = build_share_record(1, credentials[1], [Point.base_mul(5)])
    restored = DecryptionShareRecord.from_dict(record.to_dict())
    assert restored.pairs == record.pairs
    assert restored.kh_public_key == record.kh_public_key
    assert restored.proofs == record.proofs
    assert restored.verify_signature(1)


def test_malformed_record_dict_rejected():
    with pytest.raises(ShareBlobError):
        DecryptionShareRecord.from_dict({'kh_index': 1, 'shares': []})


def test_partial_decrypt_rejects_identity():
    with pytest.raises(ValueError):
        partial_decrypt(Point.identity(), 5)


def test_dleq_proof_verifies():
    secret = secp256k1.random_scalar()
    c1 = Point.base_mul(secp256k1.random_scalar())
    d = c1 * secret
    proof = prove_dleq(secret, c1, d)
    assert verify_dleq(Point.base_mul(secret), c1, d, proof)


def test_dleq_proof_rejects_wrong_statement():
    secret = secp256k1.random_scalar()
    c1 = Point.base_mul(secp256k1.random_scalar())
    d = c1 * secret
    proof = prove_dleq(secret, c1, d)

    assert not verify_dleq(Point.base_mul(secret), c1, d + Point.generator(), proof)
    assert not verify_dleq(Point.base_mul(secret + 1), c1, d, proof)
    assert not verify_dleq(Point.base_mul(secret), c1, Point.identity(), proof)


def test_dleq_proof_dict_round_trip():
    proof = prove_dleq(11, Point.base_mul(3))
    assert DLEQProof.from_dict(proof.to_dict()) == proof


def test_audit_flags_bad_partials(dkg_result, credentials):
    c1_points = [Point.base_mul(i) for i in (21, 22, 23)]
    record = build_share_record(0, credentials[2], c1_points)
    verification_key = dkg_result.verification_key(3)
    assert audit_share_record(record, verification_key) == []

    c1, d = record.pairs[1]
    record.pairs[1] = (c1, d + Point.generator())
    assert audit_share_record(record, verification_key) == [1]


def test_audit_requires_proofs(credentials):
    record = build_share_record(0, credentials[0], [Point.base_mul(3)], with_proofs=False)
    assert record.proofs is None
    with pytest.raises(ValueError):
        audit_share_record(record, Point.base_mul(1))


def test_record_rejects_proof_count_mismatch():
    keypair = Ed25519Keypair.generate()
    with pytest.raises(ValueError):
        DecryptionShareRecord(1, _pairs(2), keypair.public_key, bytes(64),
                              proofs=[prove_dleq(3, Point.base_mul(2))])


def _flipped(data: bytes):
    for position in range(len(data)):
        altered = bytearray(data)
        altered[position] ^= 0x01
        yield bytes(altered)


def test_every_blob_byte_is_signed(credentials):
    record = build_share_record(4, credentials[0], [c1 for c1, _ in _pairs(2)])
    blob = record.blob()
    assert record.kh_public_key.verify(record.signature, shares_msg_hash(4, blob))
    for altered in _flipped(blob):
        assert not record.kh_public_key.verify(record.signature, shares_msg_hash(4, altered))
