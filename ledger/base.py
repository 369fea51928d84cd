"""
Ledger collaborator interface.

The voting core treats the ledger as an authenticated, append-only bulletin
board. Implementations enforce nullifier uniqueness, voting windows and the
key-holder roster; the core only reads and writes through this interface.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from curves.ed25519 import Ed25519PublicKey
from curves.secp256k1 import Point
from threshold.shares import DecryptionShareRecord, SharePair

from .errors import ElectionNotFound, RecordValidationError
from .records import (
    CastRequest,
    DeployRequest,
    ElectionParams,
    EncryptedBallot,
    FinalizeTallyRequest,
    IssueAccountRequest,
    LedgerRequest,
    PostShareRequest,
)


class LedgerStore(ABC):

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    def deploy(self, params: ElectionParams) -> int:
        """Register an election, returning its id"""

    @abstractmethod
    def set_key_holder_commitment(self, eid: int, kh_index: int, commitment: Point):
        """Publish key-holder kh_index's constant-term commitment"""

    @abstractmethod
    def issue_account(self, eid: int, pk_cast: bytes, nf_issue: bytes,
                      distributor_signatures: Sequence[Tuple[Ed25519PublicKey, bytes]]):
        """Spend nf_issue and bind pk_cast to the election"""

    @abstractmethod
    def cast(self, eid: int, nf_cast: bytes, c1: Point, c2: Point,
             pk_cast: bytes, signature: bytes) -> int:
        """Accept an encrypted ballot, returning its index"""

    @abstractmethod
    def post_share(self, eid: int, kh_index: int, pairs: Sequence[SharePair],
                   kh_public_key: Ed25519PublicKey, signature: bytes) -> int:
        """Store a key-holder's signed partial decryptions, returning the share count"""

    @abstractmethod
    def finalize_tally(self, eid: int, counts: Sequence[int]):
        """Record the final counts once"""

    @abstractmethod
    def delete_election(self, eid: int):
        """Remove a closed, untallied election"""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    def get_election(self, eid: int) -> Optional[ElectionParams]:
        pass

    @abstractmethod
    def get_ballot(self, eid: int, index: int) -> Optional[EncryptedBallot]:
        pass

    @abstractmethod
    def get_ballot_count(self, eid: int) -> int:
        pass

    @abstractmethod
    def get_kh_shares(self, eid: int, kh_index: int) -> Optional[DecryptionShareRecord]:
        pass

    @abstractmethod
    def get_share_count(self, eid: int) -> int:
        pass

    @abstractmethod
    def get_tally(self, eid: int) -> Optional[List[int]]:
        pass

    @abstractmethod
    def is_cast_nullifier_used(self, eid: int, nf_cast: bytes) -> bool:
        pass

    @abstractmethod
    def is_issue_nullifier_used(self, eid: int, nf_issue: bytes) -> bool:
        pass

    @abstractmethod
    def get_kh_commitment(self, eid: int, kh_index: int) -> Optional[Point]:
        pass

    @abstractmethod
    def now(self) -> float:
        """Current ledger time in seconds"""

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def require_election(self, eid: int) -> ElectionParams:
        election = self.get_election(eid)
        if election is None:
            raise ElectionNotFound(f"Election {eid} not found")
        return election

    def get_ballots(self, eid: int) -> List[EncryptedBallot]:
        ballots = []
        for index in range(self.get_ballot_count(eid)):
            ballot = self.get_ballot(eid, index)
            if ballot is not None:
                ballots.append(ballot)
        return ballots

    def get_all_kh_shares(self, eid: int) -> Dict[int, DecryptionShareRecord]:
        election = self.require_election(eid)
        records = {}
        for index in range(1, len(election.key_holder_roster) + 1):
            record = self.get_kh_shares(eid, index)
            if record is not None:
                records[index] = record
        return records

    def submit(self, request: LedgerRequest):
        """Apply a validated tagged request"""
        if isinstance(request, DeployRequest):
            return self.deploy(request.params)
        if isinstance(request, IssueAccountRequest):
            return self.issue_account(request.eid, request.pk_cast, request.nf_issue,
                                      request.distributor_signatures)
        if isinstance(request, CastRequest):
            return self.cast(request.eid, request.nf_cast, request.c1, request.c2,
                             request.pk_cast, request.signature)
        if isinstance(request, PostShareRequest):
            return self.post_share(request.eid, request.kh_index, request.pairs,
                                   request.kh_public_key, request.signature)
        if isinstance(request, FinalizeTallyRequest):
            return self.finalize_tally(request.eid, request.counts)
        raise RecordValidationError(f"Unsupported request {type(request).__name__}")
