"""Casting layer: a one-time identity signs and submits its encrypted ballot."""

import logging
from dataclasses import dataclass
from typing import Optional

from curves.ed25519 import Ed25519PublicKey
from curves.hashing import cast_msg_hash
from curves.secp256k1 import Point
from ledger.base import LedgerStore
from ledger.records import CastRequest

from .elgamal import Ciphertext, encrypt
from .issuance import CastingIdentity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CastBallot:
    eid: int
    nf_cast: bytes
    ciphertext: Ciphertext
    pk_cast: bytes
    signature: bytes

    def message_hash(self) -> bytes:
        return cast_msg_hash(self.eid, self.nf_cast,
                             self.ciphertext.c1.to_bytes(), self.ciphertext.c2.to_bytes())

    def verify_signature(self) -> bool:
        return Ed25519PublicKey(self.pk_cast).verify(self.signature, self.message_hash())

    def to_request(self) -> CastRequest:
        return CastRequest(
            eid=self.eid,
            nf_cast=self.nf_cast,
            c1=self.ciphertext.c1,
            c2=self.ciphertext.c2,
            pk_cast=self.pk_cast,
            signature=self.signature,
        )


def prepare_ballot(identity: CastingIdentity, vote: int, public_key: Point,
                   options_count: int, randomness: Optional[int] = None) -> CastBallot:
    """Encrypt the vote and sign cast_msg_hash(eid, nf_cast, C1, C2)"""
    ciphertext = encrypt(vote, public_key, options_count, randomness)
    nf_cast = identity.cast_nullifier
    message = cast_msg_hash(identity.election_id, nf_cast,
                            ciphertext.c1.to_bytes(), ciphertext.c2.to_bytes())
    return CastBallot(
        eid=identity.election_id,
        nf_cast=nf_cast,
        ciphertext=ciphertext,
        pk_cast=identity.pk_cast,
        signature=identity.sign(message),
    )


def submit_ballot(ledger: LedgerStore, ballot: CastBallot) -> int:
    index = ledger.submit(ballot.to_request())
    logger.info(f"Ballot cast in election {ballot.eid} at index {index}")
    return index
