"""
Feldman VSS Distributed Key Generation
======================================
Each of the m key-holder parties deals a random degree-(t-1) polynomial,
publishes commitments to its coefficients and sends every other party one
evaluation. Recipients check every evaluation against the commitments before
summing them into their Shamir share of the implicit group secret, which is
never reconstructed.

The in-process ``DKGCeremony`` drives the same ``DKGParty.receive`` path a
networked party would use, so both share one verification routine.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence, Tuple

from curves import secp256k1
from curves.ed25519 import Ed25519Keypair
from curves.secp256k1 import Point, random_scalar, evaluate_polynomial, sum_points

from .errors import CeremonyVerificationFailure, VotingProtocolError

logger = logging.getLogger(__name__)

# ============================================================================
# TYPES
# ============================================================================


class DKGStatus(Enum):
    """Ceremony execution states"""
    INITIALIZED = "initialized"
    COMMITMENT_PHASE = "commitment_phase"
    SHARE_DISTRIBUTION = "share_distribution"
    VERIFICATION_PHASE = "verification_phase"
    COMPLETE = "complete"
    FAILED = "failed"


def validate_parameters(num_parties: int, threshold: int):
    if num_parties < 1:
        raise ValueError(f"Need at least one party, got {num_parties}")
    if not 1 <= threshold <= num_parties:
        raise ValueError(
            f"Threshold must satisfy 1 <= t <= m, got t={threshold}, m={num_parties}")


@dataclass(frozen=True)
class PolynomialCommitmentSet:
    """Public commitments A_{j,0..t-1} of party j's polynomial"""
    party_index: int
    points: Tuple[Point, ...]

    def __post_init__(self):
        if self.party_index <= 0:
            raise ValueError("Party index must be positive")
        if not self.points:
            raise ValueError("Commitment set must contain at least one point")
        if any(p.is_identity for p in self.points):
            raise ValueError("Commitment points must not be the identity")

    @property
    def degree(self) -> int:
        return len(self.points) - 1

    @property
    def constant_term(self) -> Point:
        return self.points[0]

    def evaluate_at(self, index: int) -> Point:
        """Sum_k A_k * index^k, the public image of f_j(index)"""
        total = Point.identity()
        x_power = 1
        for point in self.points:
            total = total + point * x_power
            x_power = secp256k1.mul(x_power, index)
        return total

    def to_hex(self) -> List[str]:
        return [p.hex() for p in self.points]

    @classmethod
    def from_hex(cls, party_index: int, values: Sequence[str]) -> "PolynomialCommitmentSet":
        return cls(party_index, tuple(Point.from_hex(v) for v in values))


@dataclass
class KeyHolderShare:
    """One key-holder's Shamir share of the implicit group secret"""
    index: int
    secret_scalar: int = field(repr=False)
    commitment: Point

    def __post_init__(self):
        if self.index <= 0:
            raise ValueError("Key-holder index must be positive (1-based)")
        if not 0 < self.secret_scalar < secp256k1.Q:
            raise ValueError("Secret scalar out of range")

    @property
    def public_share(self) -> Point:
        """PK_i = sk_i * G"""
        return Point.base_mul(self.secret_scalar)


def verify_share(share: int, recipient_index: int, commitment_set: PolynomialCommitmentSet) -> bool:
    """Feldman check: share * G == Sum_k A_{j,k} * i^k"""
    if not 0 <= share < secp256k1.Q:
        return False
    return Point.base_mul(share) == commitment_set.evaluate_at(recipient_index)


def combined_public_key_from(commitment_sets: Sequence[PolynomialCommitmentSet]) -> Point:
    """PK = Sum_j A_{j,0}"""
    if not commitment_sets:
        raise ValueError("No commitment sets given")
    return sum_points(c.constant_term for c in commitment_sets)


# ============================================================================
# PARTY
# ============================================================================


class DKGParty:
    """A single dealer/recipient in the ceremony"""

    def __init__(self, index: int, num_parties: int, threshold: int):
        validate_parameters(num_parties, threshold)
        if not 1 <= index <= num_parties:
            raise ValueError(f"Party index {index} outside 1..{num_parties}")

        self.index = index
        self.num_parties = num_parties
        self.threshold = threshold

        self._coefficients = [random_scalar() for _ in range(threshold)]
        self.commitments = PolynomialCommitmentSet(
            index, tuple(Point.base_mul(a) for a in self._coefficients))

        self._received: Dict[int, int] = {}
        self._sender_commitments: Dict[int, PolynomialCommitmentSet] = {}
        self._discarded = False

    def deal(self, recipient_index: int) -> int:
        """Private evaluation f_j(i) for recipient i"""
        if self._discarded:
            raise VotingProtocolError(f"Party {self.index} was discarded")
        if not 1 <= recipient_index <= self.num_parties:
            raise ValueError(f"Recipient index {recipient_index} outside 1..{self.num_parties}")
        return evaluate_polynomial(self._coefficients, recipient_index)

    def receive(self, sender_index: int, share: int, commitments: PolynomialCommitmentSet):
        """Verify and store the share dealt by sender_index"""
        if self._discarded:
            raise VotingProtocolError(f"Party {self.index} was discarded")
        if not 1 <= sender_index <= self.num_parties:
            raise CeremonyVerificationFailure(
                f"Unknown sender {sender_index}", sender_index, self.index)
        if sender_index in self._received:
            raise CeremonyVerificationFailure(
                f"Party {self.index} already holds a share from {sender_index}",
                sender_index, self.index)
        if commitments.party_index != sender_index:
            raise CeremonyVerificationFailure(
                f"Commitments belong to party {commitments.party_index}, not {sender_index}",
                sender_index, self.index)
        if len(commitments.points) != self.threshold:
            raise CeremonyVerificationFailure(
                f"Party {sender_index} committed to {len(commitments.points)} coefficients, "
                f"expected {self.threshold}", sender_index, self.index)

        if not verify_share(share, self.index, commitments):
            logger.error(f"Feldman check failed: share from {sender_index} to {self.index}")
            raise CeremonyVerificationFailure(
                f"Share from party {sender_index} to party {self.index} "
                f"does not match its commitments", sender_index, self.index)

        self._received[sender_index] = share
        self._sender_commitments[sender_index] = commitments

    @property
    def received_count(self) -> int:
        return len(self._received)

    def finalize(self) -> KeyHolderShare:
        """sk_i = Sum_j f_j(i); requires a verified share from every party"""
        if self._discarded:
            raise VotingProtocolError(f"Party {self.index} was discarded")
        missing = sorted(set(range(1, self.num_parties + 1)) - set(self._received))
        if missing:
            raise VotingProtocolError(
                f"Party {self.index} is missing shares from parties {missing}")

        secret = 0
        for value in self._received.values():
            secret = secp256k1.add(secret, value)
        return KeyHolderShare(self.index, secret, self.commitments.constant_term)

    def discard(self):
        """Drop all secret material; the party cannot be used afterwards"""
        self._received.clear()
        self._sender_commitments.clear()
        self._coefficients = [0] * len(self._coefficients)
        self._discarded = True


# ============================================================================
# CEREMONY
# ============================================================================


@dataclass
class DKGResult:
    """Global ceremony output"""
    num_parties: int
    threshold: int
    combined_public_key: Point
    shares: List[KeyHolderShare]
    commitments: List[PolynomialCommitmentSet]
    identities: List[Ed25519Keypair]
    duration: float = 0.0

    def share_for(self, index: int) -> KeyHolderShare:
        for share in self.shares:
            if share.index == index:
                return share
        raise KeyError(f"No share for key-holder {index}")

    def identity_for(self, index: int) -> Ed25519Keypair:
        return self.identities[index - 1]

    def verification_key(self, index: int) -> Point:
        """Public PK_i = Sum_j Sum_k A_{j,k} i^k, used by proof auditors"""
        return sum_points(c.evaluate_at(index) for c in self.commitments)

    def summary(self) -> Dict:
        return {
            'm': self.num_parties,
            't': self.threshold,
            'combined_pubkey': self.combined_public_key.hex(),
            'kh_ed_pks': [kp.public_key.hex() for kp in self.identities],
            'commitments': [s.commitment.hex() for s in self.shares],
        }


class DKGCeremony:
    """Simulates all m parties in one process"""

    def __init__(self, num_parties: int, threshold: int):
        validate_parameters(num_parties, threshold)
        self.num_parties = num_parties
        self.threshold = threshold
        self.status = DKGStatus.INITIALIZED
        self.parties = [DKGParty(i, num_parties, threshold)
                        for i in range(1, num_parties + 1)]

    def run(self) -> DKGResult:
        if self.status != DKGStatus.INITIALIZED:
            raise VotingProtocolError(
                f"Ceremony cannot be run from state {self.status.value}")

        start_time = time.time()
        logger.info(f"Starting DKG ceremony: m={self.num_parties}, t={self.threshold}")

        try:
            self.status = DKGStatus.COMMITMENT_PHASE
            commitment_sets = [p.commitments for p in self.parties]

            self.status = DKGStatus.SHARE_DISTRIBUTION
            dealt = {
                (dealer.index, recipient.index): dealer.deal(recipient.index)
                for dealer in self.parties
                for recipient in self.parties
            }

            # Every m x m pair is verified before any party finalizes
            self.status = DKGStatus.VERIFICATION_PHASE
            for recipient in self.parties:
                for dealer in self.parties:
                    recipient.receive(
                        dealer.index,
                        dealt[(dealer.index, recipient.index)],
                        commitment_sets[dealer.index - 1])
        except CeremonyVerificationFailure:
            self._abort()
            raise

        shares = [p.finalize() for p in self.parties]
        combined = combined_public_key_from(commitment_sets)
        identities = [Ed25519Keypair.generate() for _ in self.parties]
        self.status = DKGStatus.COMPLETE

        duration = time.time() - start_time
        logger.info(f"DKG complete in {duration:.3f}s, combined key {combined.hex()[:16]}...")

        return DKGResult(
            num_parties=self.num_parties,
            threshold=self.threshold,
            combined_public_key=combined,
            shares=shares,
            commitments=list(commitment_sets),
            identities=identities,
            duration=duration,
        )

    def _abort(self):
        self.status = DKGStatus.FAILED
        for party in self.parties:
            party.discard()
        logger.error("DKG ceremony aborted, all party state discarded")


def run_dkg(num_parties: int, threshold: int) -> DKGResult:
    return DKGCeremony(num_parties, threshold).run()
