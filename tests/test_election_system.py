import asyncio

import pytest

from election_system import IntegratedElection, ManualClock
from ledger.errors import DuplicateNullifier, LedgerUnavailable, OutsideVotingWindow
from ledger.memory import InMemoryLedger
from threshold.errors import InsufficientShares, VotingProtocolError

VOTING_DURATION = 600


def _election(clock, **kwargs):
    kwargs.setdefault('options_count', 3)
    return IntegratedElection(
        title="Integration",
        num_key_holders=3,
        threshold=2,
        voting_duration=VOTING_DURATION,
        clock=clock,
        retry_delay=0,
        **kwargs,
    )


def test_full_election_flow():
    async def scenario():
        clock = ManualClock(1_000.0)
        election = _election(clock)
        for name in ("alice", "bob", "carol", "dave"):
            election.register_voter(name)
        eid = await election.initialize()

        receipts = []
        for name, vote in zip(("alice", "bob", "carol", "dave"), (0, 2, 2, 1)):
            receipts.append(await election.cast_ballot(name, vote))

        with pytest.raises(OutsideVotingWindow):
            await election.post_decryption_shares()

        clock.advance(VOTING_DURATION)
        posted = await election.post_decryption_shares(indices=[1, 3])
        result = await election.compute_tally()
        return election, eid, receipts, posted, result

    election, eid, receipts, posted, result = asyncio.run(scenario())

    assert [r.ballot_index for r in receipts] == [0, 1, 2, 3]
    assert len({r.nf_cast for r in receipts}) == 4
    assert posted == {1: 1, 3: 2}
    assert result.counts == [1, 1, 2]
    assert result.index_set == [1, 3]
    assert election.ledger.get_tally(eid) == [1, 1, 2]
    for index in (1, 2, 3):
        assert election.ledger.get_kh_commitment(eid, index) is not None

    metrics = election.get_system_metrics()
    assert metrics['ballots_cast'] == 4
    assert 'dkg' in metrics['performance']['operations']


def test_voter_cannot_vote_twice():
    async def scenario():
        election = _election(ManualClock(0.0), options_count=2)
        election.register_voter("alice")
        await election.initialize()
        await election.cast_ballot("alice", 1)
        await election.cast_ballot("alice", 0)

    with pytest.raises(DuplicateNullifier):
        asyncio.run(scenario())


def test_tally_needs_threshold_shares():
    async def scenario():
        clock = ManualClock(0.0)
        election = _election(clock, options_count=2)
        election.register_voter("alice")
        await election.initialize()
        await election.cast_ballot("alice", 1)
        clock.advance(VOTING_DURATION)
        await election.post_decryption_shares(indices=[2])
        await election.compute_tally()

    with pytest.raises(InsufficientShares):
        asyncio.run(scenario())


def test_registration_closes_at_initialize():
    async def scenario():
        election = _election(ManualClock(0.0))
        election.register_voter("alice")
        await election.initialize()
        election.register_voter("bob")

    with pytest.raises(VotingProtocolError):
        asyncio.run(scenario())


def test_operations_require_initialize():
    election = _election(ManualClock(0.0))
    with pytest.raises(VotingProtocolError):
        asyncio.run(election.cast_ballot("alice", 0))
    with pytest.raises(VotingProtocolError):
        asyncio.run(election.initialize())


class FlakyLedger(InMemoryLedger):
    """Fails the first deploy with a transport error"""

    def __init__(self, clock):
        super().__init__(clock)
        self.deploy_attempts = 0

    def deploy(self, params):
        self.deploy_attempts += 1
        if self.deploy_attempts == 1:
            raise LedgerUnavailable("connection reset")
        return super().deploy(params)


def test_transport_failures_are_retried():
    clock = ManualClock(0.0)
    ledger = FlakyLedger(clock)
    election = _election(clock, ledger=ledger)
    election.register_voter("alice")

    eid = asyncio.run(election.initialize())
    assert eid == 0
    assert ledger.deploy_attempts == 2


def test_retries_are_bounded():
    clock = ManualClock(0.0)
    ledger = FlakyLedger(clock)
    election = _election(clock, ledger=ledger, max_ledger_retries=0)
    election.register_voter("alice")

    with pytest.raises(LedgerUnavailable):
        asyncio.run(election.initialize())
    assert ledger.deploy_attempts == 1
