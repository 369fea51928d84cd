"""
Tally combiner
==============
Combines at least t key-holders' partial decryptions with Lagrange
coefficients at x=0, recovers each vote by bounded discrete log and sums the
per-option counts. One fixed index set is used for every ballot, and only
share records computed against exactly the ballot set being tallied are
eligible for it.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ballot.elgamal import decrypt, validate_options_count
from curves.secp256k1 import Point, lagrange_coefficient
from ledger.base import LedgerStore
from ledger.errors import OutsideVotingWindow

from .errors import InconsistentShareSet, InsufficientShares, InvalidBallotDecode
from .shares import DecryptionShareRecord

logger = logging.getLogger(__name__)

RecordSet = Union[Mapping[int, DecryptionShareRecord], Iterable[DecryptionShareRecord]]


@dataclass
class TallyResult:
    counts: List[int]
    index_set: List[int]
    ballots_counted: int
    rejected: List[int] = field(default_factory=list)
    computation_time: float = 0.0

    @property
    def total_votes(self) -> int:
        return sum(self.counts)

    def winner(self) -> Optional[int]:
        if not self.counts or max(self.counts) == 0:
            return None
        return self.counts.index(max(self.counts))


def combine_partial_decryptions(partials: Mapping[int, Point], threshold: int) -> Point:
    """D = Sum_{j in S} lambda_j * D_j over the given index set S"""
    if len(partials) < threshold:
        raise InsufficientShares(
            f"Have partial decryptions from {len(partials)} key-holders, need {threshold}",
            available=len(partials), required=threshold)

    indices = sorted(partials)
    combined = Point.identity()
    for j in indices:
        combined = combined + partials[j] * lagrange_coefficient(j, indices)
    return combined


def _index_records(records: RecordSet) -> Dict[int, DecryptionShareRecord]:
    if isinstance(records, Mapping):
        records = records.values()
    indexed = {}
    for record in records:
        if record.kh_index in indexed:
            raise InconsistentShareSet(f"Two share records for key-holder {record.kh_index}")
        indexed[record.kh_index] = record
    return indexed


class TallyCombiner:

    def __init__(self, options_count: int, threshold: int, eid: Optional[int] = None):
        validate_options_count(options_count)
        if threshold < 1:
            raise ValueError("Threshold must be at least 1")
        self.options_count = options_count
        self.threshold = threshold
        self.eid = eid

    def is_consistent(self, record: DecryptionShareRecord, ballots: Sequence) -> bool:
        """Record covers exactly these ballots, in order"""
        c1_list = record.c1_list
        if len(c1_list) != len(ballots):
            return False
        return all(c1 == ballot.c1 for c1, ballot in zip(c1_list, ballots))

    def usable_records(self, records: RecordSet, ballots: Sequence) -> Dict[int, DecryptionShareRecord]:
        usable = {}
        for index, record in _index_records(records).items():
            if self.eid is not None and not record.verify_signature(self.eid):
                logger.warning(f"Ignoring key-holder {index}: share signature does not verify")
                continue
            if not self.is_consistent(record, ballots):
                logger.warning(f"Ignoring key-holder {index}: shares cover a different ballot set")
                continue
            usable[index] = record
        return usable

    def select_index_set(self, records: RecordSet, ballots: Sequence) -> List[int]:
        """The t lowest key-holder indices with ballot-consistent records"""
        usable = self.usable_records(records, ballots)
        if len(usable) < self.threshold:
            raise InsufficientShares(
                f"{len(usable)} ballot-consistent share records, need {self.threshold}",
                available=len(usable), required=self.threshold)
        return sorted(usable)[:self.threshold]

    def combine(self, ballots: Sequence, records: RecordSet,
                indices: Optional[Sequence[int]] = None) -> TallyResult:
        start_time = time.time()
        ballots = list(ballots)

        if indices is None:
            usable = self.usable_records(records, ballots)
            index_set = self.select_index_set(usable, ballots)
        else:
            index_set = sorted(indices)
            if len(set(index_set)) != len(index_set):
                raise InconsistentShareSet(f"Duplicate indices in {index_set}")
            if len(index_set) < self.threshold:
                raise InsufficientShares(
                    f"Index set {index_set} is below threshold {self.threshold}",
                    available=len(index_set), required=self.threshold)
            indexed = _index_records(records)
            usable = self.usable_records(indexed, ballots)
            missing = [j for j in index_set if j not in indexed]
            if missing:
                raise InconsistentShareSet(f"No share records for key-holders {missing}")
            unusable = [j for j in index_set if j not in usable]
            if unusable:
                raise InconsistentShareSet(
                    f"Share records of key-holders {unusable} do not match the ballot set")

        counts = [0] * self.options_count
        rejected = []
        for position, ballot in enumerate(ballots):
            partials = {j: usable[j].pairs[position][1] for j in index_set}
            decryption_point = combine_partial_decryptions(partials, self.threshold)
            try:
                vote = decrypt(ballot, decryption_point, self.options_count)
            except InvalidBallotDecode as e:
                logger.warning(f"Ballot {position} excluded from tally: {e}")
                rejected.append(position)
                continue
            counts[vote] += 1

        result = TallyResult(
            counts=counts,
            index_set=index_set,
            ballots_counted=len(ballots) - len(rejected),
            rejected=rejected,
            computation_time=time.time() - start_time,
        )
        logger.info(f"Tally over key-holders {index_set}: {counts} "
                    f"({len(rejected)} ballots rejected)")
        return result


def tally_election(ledger: LedgerStore, eid: int, indices: Optional[Sequence[int]] = None,
                   finalize: bool = True) -> TallyResult:
    """Combine the posted shares of a closed election and finalize it once"""
    election = ledger.require_election(eid)
    if not election.is_closed(ledger.now()):
        raise OutsideVotingWindow(f"Election {eid} has not closed yet")

    ballots = ledger.get_ballots(eid)
    records = ledger.get_all_kh_shares(eid)
    combiner = TallyCombiner(election.options_count, election.key_holder_threshold, eid=eid)
    result = combiner.combine(ballots, records, indices)

    if finalize:
        ledger.finalize_tally(eid, result.counts)
    return result
