"""
Issuance (anonymization) layer
==============================
A voter proves control of an eligible long-lived key to a quorum of
distributors. Each distributor checks eligibility against the on-ledger
Merkle root and that the issuance nullifier is unused, then signs
``issue_msg_hash(eid, pk_cast, nf_issue)`` for a freshly generated casting
identity. The ledger spends ``nf_issue`` once and binds ``pk_cast`` to the
election.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from curves.ed25519 import Ed25519Keypair, Ed25519PublicKey
from curves.hashing import eid_bytes, issue_msg_hash, nullifier_cast, nullifier_issue
from ledger.base import LedgerStore
from ledger.errors import DuplicateNullifier
from threshold.errors import SignatureVerificationFailure, VotingProtocolError

from .eligibility import MerkleProof, verify_inclusion
from .sessions import IssuanceSessionStore

logger = logging.getLogger(__name__)

CHALLENGE_TAG = b"stellot:challenge"


class NotEligible(VotingProtocolError):
    """Voter key is not in the election's eligibility set"""
    pass


class InsufficientApprovals(VotingProtocolError):
    """Fewer distributors approved than the election requires"""
    pass


def challenge_msg_hash(eid: int, challenge: bytes) -> bytes:
    """Message a voter signs to answer a distributor's session challenge"""
    return hashlib.sha256(CHALLENGE_TAG + eid_bytes(eid) + bytes(challenge)).digest()


# ============================================================================
# VOTER SIDE
# ============================================================================


@dataclass
class VoterCredential:
    """Long-lived voter key: public half is the eligibility leaf"""
    voter_id: str
    keypair: Ed25519Keypair

    @classmethod
    def generate(cls, voter_id: str) -> "VoterCredential":
        return cls(voter_id, Ed25519Keypair.generate())

    @property
    def public_key(self) -> bytes:
        return self.keypair.public_key.raw

    def issue_nullifier(self, eid: int) -> bytes:
        return nullifier_issue(self.keypair.seed, eid)

    def sign_challenge(self, eid: int, challenge: bytes) -> bytes:
        return self.keypair.sign(challenge_msg_hash(eid, challenge))


@dataclass
class CastingIdentity:
    """One-time Ed25519 identity used to cast a single ballot"""
    election_id: int
    keypair: Ed25519Keypair = field(repr=False)

    @classmethod
    def generate(cls, election_id: int) -> "CastingIdentity":
        return cls(election_id, Ed25519Keypair.generate())

    @property
    def pk_cast(self) -> bytes:
        return self.keypair.public_key.raw

    @property
    def cast_nullifier(self) -> bytes:
        return nullifier_cast(self.keypair.seed, self.election_id)

    def sign(self, message: bytes) -> bytes:
        return self.keypair.sign(message)


@dataclass
class IssuanceRequest:
    election_id: int
    voter_public_key: bytes
    pk_cast: bytes
    nf_issue: bytes
    challenge: bytes
    challenge_signature: bytes
    eligibility_proof: MerkleProof

    @property
    def identity_id(self) -> str:
        return self.voter_public_key.hex()


def prepare_issuance(voter: VoterCredential, identity: CastingIdentity, challenge: bytes,
                     eligibility_proof: MerkleProof) -> IssuanceRequest:
    eid = identity.election_id
    return IssuanceRequest(
        election_id=eid,
        voter_public_key=voter.public_key,
        pk_cast=identity.pk_cast,
        nf_issue=voter.issue_nullifier(eid),
        challenge=challenge,
        challenge_signature=voter.sign_challenge(eid, challenge),
        eligibility_proof=list(eligibility_proof),
    )


# ============================================================================
# DISTRIBUTOR SIDE
# ============================================================================


@dataclass
class DistributorApproval:
    """A distributor's signature over issue_msg_hash(eid, pk_cast, nf_issue)"""
    eid: int
    pk_cast: bytes
    nf_issue: bytes
    distributor_public_key: Ed25519PublicKey
    signature: bytes

    def message_hash(self) -> bytes:
        return issue_msg_hash(self.eid, self.pk_cast, self.nf_issue)

    def verify(self) -> bool:
        return self.distributor_public_key.verify(self.signature, self.message_hash())

    @property
    def signature_entry(self) -> Tuple[Ed25519PublicKey, bytes]:
        return self.distributor_public_key, self.signature

    def to_dict(self) -> Dict:
        return {
            'eid': self.eid,
            'pk_cast': self.pk_cast.hex(),
            'nf_issue': self.nf_issue.hex(),
            'dist_pk': self.distributor_public_key.hex(),
            'dist_sig': self.signature.hex(),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "DistributorApproval":
        return cls(
            eid=int(data['eid']),
            pk_cast=bytes.fromhex(data['pk_cast']),
            nf_issue=bytes.fromhex(data['nf_issue']),
            distributor_public_key=Ed25519PublicKey.from_hex(data['dist_pk']),
            signature=bytes.fromhex(data['dist_sig']),
        )


class Distributor:
    """Approves casting identities for eligible voters"""

    def __init__(self, keypair: Ed25519Keypair, sessions: IssuanceSessionStore,
                 ledger: LedgerStore):
        self.keypair = keypair
        self.sessions = sessions
        self.ledger = ledger
        # (eid, voter key) -> nf_issue already approved for that voter
        self._approved: Dict[Tuple[int, bytes], bytes] = {}

    @property
    def public_key(self) -> Ed25519PublicKey:
        return self.keypair.public_key

    def begin_issuance(self, eid: int, voter_public_key: bytes) -> bytes:
        """Open a challenge session for the voter"""
        self.ledger.require_election(eid)
        session = self.sessions.open(eid, bytes(voter_public_key).hex())
        return session.challenge

    def approve(self, request: IssuanceRequest) -> DistributorApproval:
        eid = request.election_id
        self.sessions.consume(eid, request.identity_id, request.challenge)

        voter_key = Ed25519PublicKey(request.voter_public_key)
        if not voter_key.verify(request.challenge_signature,
                                challenge_msg_hash(eid, request.challenge)):
            raise SignatureVerificationFailure("Voter challenge signature does not verify")

        election = self.ledger.require_election(eid)
        if not verify_inclusion(election.eligibility_root, request.voter_public_key,
                                request.eligibility_proof):
            raise NotEligible(f"Voter {request.identity_id[:16]} is not in the eligibility set")

        if self.ledger.is_issue_nullifier_used(eid, request.nf_issue):
            raise DuplicateNullifier("Issue nullifier already spent", kind="issue")

        key = (eid, request.voter_public_key)
        previous = self._approved.get(key)
        if previous is not None and previous != request.nf_issue:
            raise DuplicateNullifier(
                f"Voter {request.identity_id[:16]} was already approved with another nullifier",
                kind="issue")

        approval = sign_issue(self.keypair, eid, request.pk_cast, request.nf_issue)
        self._approved[key] = request.nf_issue
        return approval


def sign_issue(keypair: Ed25519Keypair, eid: int, pk_cast: bytes,
               nf_issue: bytes) -> DistributorApproval:
    """Bare approval signature, for distributors that check eligibility out of band"""
    signature = keypair.sign(issue_msg_hash(eid, pk_cast, nf_issue))
    logger.info(f"Distributor {keypair.public_key.hex()[:8]} approved "
                f"casting key {pk_cast.hex()[:16]}... for election {eid}")
    return DistributorApproval(eid, pk_cast, nf_issue, keypair.public_key, signature)


def collect_approvals(distributors: Sequence[Distributor], voter: VoterCredential,
                      identity: CastingIdentity, eligibility_proof: MerkleProof,
                      threshold: int) -> List[DistributorApproval]:
    """Run issuance against each distributor until threshold approvals are held"""
    eid = identity.election_id
    approvals = []
    for distributor in distributors:
        if len(approvals) >= threshold:
            break
        challenge = distributor.begin_issuance(eid, voter.public_key)
        request = prepare_issuance(voter, identity, challenge, eligibility_proof)
        try:
            approvals.append(distributor.approve(request))
        except DuplicateNullifier:
            raise
        except VotingProtocolError as e:
            logger.warning(f"Distributor {distributor.public_key.hex()[:8]} refused: {e}")

    if len(approvals) < threshold:
        raise InsufficientApprovals(
            f"Collected {len(approvals)} distributor approvals, need {threshold}")
    return approvals


def register_casting_identity(ledger: LedgerStore, voter: VoterCredential,
                              identity: CastingIdentity,
                              approvals: Sequence[DistributorApproval]):
    """Submit the approvals so the ledger spends nf_issue and binds pk_cast"""
    eid = identity.election_id
    ledger.issue_account(eid, identity.pk_cast, voter.issue_nullifier(eid),
                         [a.signature_entry for a in approvals])
