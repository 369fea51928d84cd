import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from ballot.casting import prepare_ballot, submit_ballot  # noqa: E402
from ballot.eligibility import EligibilityTree  # noqa: E402
from ballot.issuance import (  # noqa: E402
    CastingIdentity,
    Distributor,
    VoterCredential,
    collect_approvals,
    register_casting_identity,
)
from ballot.sessions import IssuanceSessionStore  # noqa: E402
from curves.ed25519 import Ed25519Keypair  # noqa: E402
from election_system import ManualClock  # noqa: E402
from ledger.memory import InMemoryLedger  # noqa: E402
from ledger.records import ElectionParams  # noqa: E402
from threshold.credentials import credentials_from_result  # noqa: E402
from threshold.dkg import run_dkg  # noqa: E402

START_TIME = 1_700_000_000
VOTING_DURATION = 3600
SESSION_TTL = 300


@pytest.fixture(scope="session")
def dkg_result():
    return run_dkg(3, 2)


@pytest.fixture(scope="session")
def credentials(dkg_result):
    return credentials_from_result(dkg_result)


@pytest.fixture
def clock():
    return ManualClock(float(START_TIME))


def make_election(clock, dkg_result, num_voters=3, options_count=3,
                  num_distributors=1, distributor_threshold=1):
    """Deploy an election on a fresh in-memory ledger"""
    ledger = InMemoryLedger(clock)
    voters = [VoterCredential.generate(f"voter_{i}") for i in range(num_voters)]
    tree = EligibilityTree([v.public_key for v in voters])
    distributor_keys = [Ed25519Keypair.generate() for _ in range(num_distributors)]

    params = ElectionParams(
        title="Test election",
        options_count=options_count,
        start_time=START_TIME,
        end_time=START_TIME + VOTING_DURATION,
        combined_public_key=dkg_result.combined_public_key,
        eligibility_root=tree.root,
        distributor_roster=[k.public_key for k in distributor_keys],
        distributor_threshold=distributor_threshold,
        key_holder_roster=[k.public_key for k in dkg_result.identities],
        key_holder_threshold=dkg_result.threshold,
    )
    eid = ledger.deploy(params)

    sessions = IssuanceSessionStore(SESSION_TTL, clock)
    distributors = [Distributor(k, sessions, ledger) for k in distributor_keys]
    return SimpleNamespace(
        ledger=ledger,
        clock=clock,
        eid=eid,
        voters=voters,
        tree=tree,
        sessions=sessions,
        distributor_keys=distributor_keys,
        distributors=distributors,
        distributor_threshold=distributor_threshold,
        options_count=options_count,
        public_key=dkg_result.combined_public_key,
    )


@pytest.fixture
def election(clock, dkg_result):
    return make_election(clock, dkg_result)


def issue_identity(env, voter) -> CastingIdentity:
    identity = CastingIdentity.generate(env.eid)
    approvals = collect_approvals(env.distributors, voter, identity,
                                  env.tree.proof(voter.public_key),
                                  env.distributor_threshold)
    register_casting_identity(env.ledger, voter, identity, approvals)
    return identity


def cast_vote(env, voter, vote: int) -> int:
    identity = issue_identity(env, voter)
    ballot = prepare_ballot(identity, vote, env.public_key, env.options_count)
    return submit_ballot(env.ledger, ballot)
