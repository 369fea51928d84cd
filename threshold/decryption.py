"""
Partial decryption by a single key-holder.

For each ballot the key-holder publishes D_j = sk_j * C1 together with a
Chaum-Pedersen proof, and signs the serialized pairs with its Ed25519
identity. Ledgers verify only the signature; the proofs are for off-ledger
audit.
"""

import logging
from typing import List, Sequence

from curves.hashing import shares_msg_hash
from curves.secp256k1 import Point

from .credentials import KeyHolderCredential
from .errors import SignatureVerificationFailure
from .proofs import prove_dleq, verify_dleq
from .shares import DecryptionShareRecord, serialise_shares

logger = logging.getLogger(__name__)


def partial_decrypt(c1: Point, secret: int) -> Point:
    if c1.is_identity:
        raise ValueError("C1 must not be the identity")
    return c1 * secret


def build_share_record(eid: int, credential: KeyHolderCredential,
                       c1_points: Sequence[Point], with_proofs: bool = True) -> DecryptionShareRecord:
    """Partial decryptions of every given C1, signed by the key-holder"""
    secret = credential.share.secret_scalar
    pairs = []
    proofs = [] if with_proofs else None
    for c1 in c1_points:
        d = partial_decrypt(c1, secret)
        pairs.append((c1, d))
        if with_proofs:
            proofs.append(prove_dleq(secret, c1, d))

    signature = credential.identity.sign(shares_msg_hash(eid, serialise_shares(pairs)))
    record = DecryptionShareRecord(
        kh_index=credential.index,
        pairs=pairs,
        kh_public_key=credential.identity.public_key,
        signature=signature,
        proofs=proofs,
    )
    logger.info(f"Key-holder {credential.index} built {len(pairs)} partial decryptions "
                f"for election {eid}")
    return record


def require_valid_signature(record: DecryptionShareRecord, eid: int):
    if not record.verify_signature(eid):
        raise SignatureVerificationFailure(
            f"Share signature from key-holder {record.kh_index} does not verify")


def audit_share_record(record: DecryptionShareRecord, verification_key: Point) -> List[int]:
    """Positions of ballots whose DLEQ proof fails against PK_j"""
    if record.proofs is None:
        raise ValueError(f"Share record from key-holder {record.kh_index} carries no proofs")

    failed = []
    for position, ((c1, d), proof) in enumerate(zip(record.pairs, record.proofs)):
        if not verify_dleq(verification_key, c1, d, proof):
            failed.append(position)
    if failed:
        logger.warning(f"Key-holder {record.kh_index}: {len(failed)} partial decryptions "
                       f"failed proof audit")
    return failed
