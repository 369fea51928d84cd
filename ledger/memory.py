"""
In-process ledger enforcing the election contract's rules.

Used by tests, the demo driver and single-machine ceremonies. All mutations
are serialized by one re-entrant lock, which gives the at-most-once
semantics the issuance and casting layers rely on.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from curves.ed25519 import Ed25519PublicKey
from curves.hashing import cast_msg_hash, issue_msg_hash
from curves.secp256k1 import Point
from threshold.errors import InsufficientShares, SignatureVerificationFailure, TallyConflict
from threshold.shares import DecryptionShareRecord, SharePair

from .base import LedgerStore
from .errors import (
    AlreadyPosted,
    AlreadyTallied,
    DuplicateNullifier,
    ElectionNotFound,
    InvalidDistributorSignature,
    InvalidTally,
    NotIssuedAccount,
    NotKeyHolder,
    OutsideVotingWindow,
)
from .records import ElectionParams, EncryptedBallot

logger = logging.getLogger(__name__)


@dataclass
class _ElectionState:
    params: ElectionParams
    commitments: Dict[int, Point] = field(default_factory=dict)
    issue_nullifiers: Set[bytes] = field(default_factory=set)
    casting_accounts: Set[bytes] = field(default_factory=set)
    spent_accounts: Set[bytes] = field(default_factory=set)
    cast_nullifiers: Set[bytes] = field(default_factory=set)
    ballots: List[EncryptedBallot] = field(default_factory=list)
    kh_shares: Dict[int, DecryptionShareRecord] = field(default_factory=dict)
    tally: Optional[List[int]] = None


class InMemoryLedger(LedgerStore):

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.RLock()
        self._elections: Dict[int, _ElectionState] = {}
        self._next_id = 0

    def now(self) -> float:
        return self._clock()

    def _load(self, eid: int) -> _ElectionState:
        state = self._elections.get(eid)
        if state is None:
            raise ElectionNotFound(f"Election {eid} not found")
        return state

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def deploy(self, params: ElectionParams) -> int:
        params.validate()
        with self._lock:
            eid = self._next_id
            self._elections[eid] = _ElectionState(params.with_id(eid))
            self._next_id += 1
        logger.info(f"Deployed election {eid} '{params.title}' with {params.options_count} options")
        return eid

    def set_key_holder_commitment(self, eid: int, kh_index: int, commitment: Point):
        with self._lock:
            state = self._load(eid)
            if not 1 <= kh_index <= len(state.params.key_holder_roster):
                raise NotKeyHolder(f"Key-holder index {kh_index} not in roster")
            state.commitments[kh_index] = commitment

    def issue_account(self, eid: int, pk_cast: bytes, nf_issue: bytes,
                      distributor_signatures: Sequence[Tuple[Ed25519PublicKey, bytes]]):
        with self._lock:
            state = self._load(eid)
            if nf_issue in state.issue_nullifiers:
                raise DuplicateNullifier(
                    f"Issue nullifier {nf_issue.hex()[:16]}... already spent", kind="issue")

            message = issue_msg_hash(eid, pk_cast, nf_issue)
            roster = set(state.params.distributor_roster)
            signers = set()
            for signer, signature in distributor_signatures:
                if signer not in roster or signer in signers:
                    continue
                if signer.verify(signature, message):
                    signers.add(signer)

            if len(signers) < state.params.distributor_threshold:
                raise InvalidDistributorSignature(
                    f"{len(signers)} valid distributor signatures, "
                    f"need {state.params.distributor_threshold}")

            state.issue_nullifiers.add(nf_issue)
            state.casting_accounts.add(pk_cast)
        logger.info(f"Election {eid}: issued casting account {pk_cast.hex()[:16]}...")

    def cast(self, eid: int, nf_cast: bytes, c1: Point, c2: Point,
             pk_cast: bytes, signature: bytes) -> int:
        with self._lock:
            state = self._load(eid)
            if not state.params.is_open(self.now()):
                raise OutsideVotingWindow(f"Election {eid} is not accepting ballots")
            if nf_cast in state.cast_nullifiers:
                raise DuplicateNullifier(
                    f"Cast nullifier {nf_cast.hex()[:16]}... already spent", kind="cast")
            if pk_cast not in state.casting_accounts or pk_cast in state.spent_accounts:
                raise NotIssuedAccount(f"Casting account {pk_cast.hex()[:16]}... is not issued")

            message = cast_msg_hash(eid, nf_cast, c1.to_bytes(), c2.to_bytes())
            if not Ed25519PublicKey(pk_cast).verify(signature, message):
                raise SignatureVerificationFailure("Cast signature does not verify")

            index = len(state.ballots)
            state.ballots.append(EncryptedBallot(nf_cast, c1, c2))
            state.cast_nullifiers.add(nf_cast)
            state.spent_accounts.add(pk_cast)
        logger.info(f"Election {eid}: accepted ballot {index}")
        return index

    def post_share(self, eid: int, kh_index: int, pairs: Sequence[SharePair],
                   kh_public_key: Ed25519PublicKey, signature: bytes) -> int:
        with self._lock:
            state = self._load(eid)
            if not state.params.is_closed(self.now()):
                raise OutsideVotingWindow(f"Election {eid} is still open")
            if state.params.tallied:
                raise AlreadyTallied(f"Election {eid} is already tallied")

            roster = state.params.key_holder_roster
            if not 1 <= kh_index <= len(roster) or roster[kh_index - 1] != kh_public_key:
                raise NotKeyHolder(f"Key {kh_public_key.hex()[:16]}... is not key-holder {kh_index}")
            if kh_index in state.kh_shares:
                raise AlreadyPosted(f"Key-holder {kh_index} already posted shares")

            record = DecryptionShareRecord(kh_index, list(pairs), kh_public_key, signature)
            if not record.verify_signature(eid):
                raise SignatureVerificationFailure(
                    f"Share signature from key-holder {kh_index} does not verify")

            state.kh_shares[kh_index] = record
            count = len(state.kh_shares)
        logger.info(f"Election {eid}: key-holder {kh_index} posted {len(pairs)} shares "
                    f"({count}/{state.params.key_holder_threshold})")
        return count

    def finalize_tally(self, eid: int, counts: Sequence[int]):
        counts = list(counts)
        with self._lock:
            state = self._load(eid)
            if state.params.tallied:
                if state.tally == counts:
                    logger.info(f"Election {eid}: tally already finalized with the same counts")
                    return
                raise TallyConflict(
                    f"Election {eid} was finalized with {state.tally}, refusing {counts}")
            if not state.params.is_closed(self.now()):
                raise OutsideVotingWindow(f"Election {eid} is still open")
            threshold = state.params.key_holder_threshold
            if len(state.kh_shares) < threshold:
                raise InsufficientShares(
                    f"{len(state.kh_shares)} key-holders posted, need {threshold}",
                    available=len(state.kh_shares), required=threshold)
            if len(counts) != state.params.options_count:
                raise InvalidTally(
                    f"Tally has {len(counts)} entries, election has "
                    f"{state.params.options_count} options")

            state.tally = counts
            state.params.tallied = True
        logger.info(f"Election {eid}: tally finalized {counts}")

    def delete_election(self, eid: int):
        with self._lock:
            state = self._load(eid)
            if not state.params.is_closed(self.now()):
                raise OutsideVotingWindow(f"Election {eid} is still open")
            if state.params.tallied:
                raise AlreadyTallied(f"Election {eid} is already tallied")
            del self._elections[eid]
        logger.info(f"Deleted election {eid}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_election(self, eid: int) -> Optional[ElectionParams]:
        with self._lock:
            state = self._elections.get(eid)
            return None if state is None else state.params.copy()

    def get_ballot(self, eid: int, index: int) -> Optional[EncryptedBallot]:
        with self._lock:
            state = self._elections.get(eid)
            if state is None or not 0 <= index < len(state.ballots):
                return None
            return state.ballots[index]

    def get_ballot_count(self, eid: int) -> int:
        with self._lock:
            state = self._elections.get(eid)
            return 0 if state is None else len(state.ballots)

    def get_kh_shares(self, eid: int, kh_index: int) -> Optional[DecryptionShareRecord]:
        with self._lock:
            state = self._elections.get(eid)
            return None if state is None else state.kh_shares.get(kh_index)

    def get_share_count(self, eid: int) -> int:
        with self._lock:
            state = self._elections.get(eid)
            return 0 if state is None else len(state.kh_shares)

    def get_tally(self, eid: int) -> Optional[List[int]]:
        with self._lock:
            state = self._elections.get(eid)
            return None if state is None or state.tally is None else list(state.tally)

    def is_cast_nullifier_used(self, eid: int, nf_cast: bytes) -> bool:
        with self._lock:
            state = self._elections.get(eid)
            return state is not None and nf_cast in state.cast_nullifiers

    def is_issue_nullifier_used(self, eid: int, nf_issue: bytes) -> bool:
        with self._lock:
            state = self._elections.get(eid)
            return state is not None and nf_issue in state.issue_nullifiers

    def get_kh_commitment(self, eid: int, kh_index: int) -> Optional[Point]:
        with self._lock:
            state = self._elections.get(eid)
            return None if state is None else state.commitments.get(kh_index)
