#!/usr/bin/env python3
"""
Integrated Threshold Election
=============================
Runs every protocol role in one process against a ledger:

1. Key-holders: DKG ceremony, commitments published to the ledger
2. Distributors: eligibility-checked issuance of one-time casting identities
3. Voters: encrypted ballots cast under the combined public key
4. Key-holders: signed partial decryptions posted after close
5. Combiner: threshold tally, finalized once

Cryptography runs synchronously. Ledger calls run in worker threads and only
transport failures are retried.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from ballot.casting import prepare_ballot, submit_ballot
from ballot.elgamal import validate_options_count
from ballot.eligibility import EligibilityTree
from ballot.issuance import (
    CastingIdentity,
    Distributor,
    VoterCredential,
    collect_approvals,
    register_casting_identity,
)
from ballot.sessions import IssuanceSessionStore
from curves.ed25519 import Ed25519Keypair
from ledger.base import LedgerStore
from ledger.errors import LedgerUnavailable
from ledger.memory import InMemoryLedger
from ledger.records import ElectionParams
from threshold.credentials import KeyHolderCredential, credentials_from_result
from threshold.decryption import audit_share_record, build_share_record
from threshold.dkg import DKGResult, run_dkg
from threshold.errors import VotingProtocolError
from threshold.tally import TallyResult, tally_election
from utils.utils import PerformanceMonitor

logger = logging.getLogger(__name__)


class ManualClock:
    """Settable clock for ledgers whose voting window is driven by hand"""

    def __init__(self, start: Optional[float] = None):
        self.current = time.time() if start is None else start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float):
        self.current += seconds


@dataclass
class BallotReceipt:
    """What a voter keeps after casting; carries nothing linking to the voter"""
    election_id: int
    ballot_index: int
    nf_cast: bytes
    pk_cast: bytes
    timestamp: float = field(default_factory=time.time)


class IntegratedElection:

    def __init__(
        self,
        ledger: Optional[LedgerStore] = None,
        title: str = "Election",
        options_count: int = 2,
        num_key_holders: int = 3,
        threshold: int = 2,
        num_distributors: int = 1,
        distributor_threshold: int = 1,
        voting_duration: int = 3600,
        session_ttl: float = 300.0,
        clock: Callable[[], float] = time.time,
        max_ledger_retries: int = 3,
        retry_delay: float = 0.5
    ):
        validate_options_count(options_count)
        if not 1 <= distributor_threshold <= num_distributors:
            raise ValueError("distributor_threshold must be in 1..num_distributors")

        self.title = title
        self.options_count = options_count
        self.num_key_holders = num_key_holders
        self.threshold = threshold
        self.num_distributors = num_distributors
        self.distributor_threshold = distributor_threshold
        self.voting_duration = voting_duration
        self.clock = clock
        self.max_ledger_retries = max_ledger_retries
        self.retry_delay = retry_delay

        self.ledger = ledger if ledger is not None else InMemoryLedger(clock)
        self.sessions = IssuanceSessionStore(session_ttl, clock)
        self.monitor = PerformanceMonitor()

        self.voters: Dict[str, VoterCredential] = {}
        self.distributors: List[Distributor] = []
        self.dkg_result: Optional[DKGResult] = None
        self.credentials: List[KeyHolderCredential] = []
        self.eligibility: Optional[EligibilityTree] = None
        self.election_id: Optional[int] = None

        self._initialized = False
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Ledger boundary
    # ------------------------------------------------------------------

    async def _ledger_call(self, func, *args):
        """Run a ledger operation off the event loop, retrying transport failures"""
        for attempt in range(self.max_ledger_retries + 1):
            try:
                return await asyncio.to_thread(func, *args)
            except LedgerUnavailable as e:
                if attempt == self.max_ledger_retries:
                    raise
                logger.warning(f"Ledger unavailable ({e}), retry {attempt + 1}/"
                               f"{self.max_ledger_retries}")
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

    def _require_initialized(self):
        if not self._initialized:
            raise VotingProtocolError("Election is not initialized")

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def register_voter(self, voter_id: str) -> VoterCredential:
        """Add a voter to the eligibility set; only before initialize()"""
        if self._initialized:
            raise VotingProtocolError("Eligibility set is fixed once the election is deployed")
        if voter_id in self.voters:
            raise ValueError(f"Voter {voter_id} already registered")
        credential = VoterCredential.generate(voter_id)
        self.voters[voter_id] = credential
        logger.info(f"Registered voter {voter_id}")
        return credential

    async def initialize(self) -> int:
        """Run the DKG, deploy the election and publish key-holder commitments"""
        async with self._lock:
            if self._initialized:
                return self.election_id
            if not self.voters:
                raise VotingProtocolError("Register at least one voter before initializing")

            with self.monitor.start_operation("dkg"):
                self.dkg_result = run_dkg(self.num_key_holders, self.threshold)
            self.credentials = credentials_from_result(self.dkg_result)

            self.eligibility = EligibilityTree(
                [v.public_key for v in self.voters.values()])
            distributor_keys = [Ed25519Keypair.generate() for _ in range(self.num_distributors)]

            now = int(self.clock())
            params = ElectionParams(
                title=self.title,
                options_count=self.options_count,
                start_time=now,
                end_time=now + self.voting_duration,
                combined_public_key=self.dkg_result.combined_public_key,
                eligibility_root=self.eligibility.root,
                distributor_roster=[k.public_key for k in distributor_keys],
                distributor_threshold=self.distributor_threshold,
                key_holder_roster=[k.public_key for k in self.dkg_result.identities],
                key_holder_threshold=self.threshold,
            )
            self.election_id = await self._ledger_call(self.ledger.deploy, params)

            for credential in self.credentials:
                await self._ledger_call(self.ledger.set_key_holder_commitment,
                                        self.election_id, credential.index,
                                        credential.share.commitment)

            self.distributors = [Distributor(k, self.sessions, self.ledger)
                                 for k in distributor_keys]
            self._initialized = True
            logger.info(f"Election {self.election_id} deployed: {len(self.voters)} voters, "
                        f"{self.num_key_holders} key-holders (t={self.threshold})")
            return self.election_id

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    async def request_casting_identity(self, voter_id: str) -> CastingIdentity:
        """Issuance: distributor approvals, then nf_issue spent on the ledger"""
        self._require_initialized()
        voter = self.voters.get(voter_id)
        if voter is None:
            raise ValueError(f"Voter {voter_id} not registered")

        with self.monitor.start_operation("issuance"):
            identity = CastingIdentity.generate(self.election_id)
            proof = self.eligibility.proof(voter.public_key)
            approvals = await asyncio.to_thread(
                collect_approvals, self.distributors, voter, identity, proof,
                self.distributor_threshold)
            await self._ledger_call(register_casting_identity, self.ledger, voter,
                                    identity, approvals)
        return identity

    async def cast_ballot(self, voter_id: str, vote: int) -> BallotReceipt:
        identity = await self.request_casting_identity(voter_id)

        with self.monitor.start_operation("cast"):
            ballot = prepare_ballot(identity, vote, self.dkg_result.combined_public_key,
                                    self.options_count)
            index = await self._ledger_call(submit_ballot, self.ledger, ballot)

        logger.info(f"Ballot {index} cast in election {self.election_id}")
        return BallotReceipt(self.election_id, index, ballot.nf_cast, ballot.pk_cast)

    # ------------------------------------------------------------------
    # Decryption and tally
    # ------------------------------------------------------------------

    async def post_decryption_shares(self, indices: Optional[Sequence[int]] = None) -> Dict[int, int]:
        """Each selected key-holder posts signed partial decryptions of every ballot"""
        self._require_initialized()
        if indices is None:
            indices = [c.index for c in self.credentials]

        ballots = await self._ledger_call(self.ledger.get_ballots, self.election_id)
        c1_points = [b.c1 for b in ballots]

        posted = {}
        for index in indices:
            credential = self.credentials[index - 1]
            with self.monitor.start_operation("post_shares"):
                record = build_share_record(self.election_id, credential, c1_points)
                failed = audit_share_record(record, self.dkg_result.verification_key(index))
                if failed:
                    raise VotingProtocolError(
                        f"Key-holder {index} produced unverifiable partial decryptions")
                posted[index] = await self._ledger_call(
                    self.ledger.post_share, self.election_id, record.kh_index,
                    record.pairs, record.kh_public_key, record.signature)
        return posted

    async def compute_tally(self, indices: Optional[Sequence[int]] = None,
                            finalize: bool = True) -> TallyResult:
        self._require_initialized()
        with self.monitor.start_operation("tally"):
            result = await self._ledger_call(tally_election, self.ledger, self.election_id,
                                             indices, finalize)
        logger.info(f"Election {self.election_id} tally: {result.counts}")
        return result

    def get_system_metrics(self) -> Dict:
        return {
            'election_id': self.election_id,
            'registered_voters': len(self.voters),
            'ballots_cast': (self.ledger.get_ballot_count(self.election_id)
                             if self._initialized else 0),
            'options_count': self.options_count,
            'num_key_holders': self.num_key_holders,
            'threshold': self.threshold,
            'num_distributors': self.num_distributors,
            'performance': self.monitor.get_summary(),
        }
