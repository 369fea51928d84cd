from dataclasses import replace

import pytest

from ballot.casting import prepare_ballot, submit_ballot
from ballot.eligibility import EligibilityTree, verify_inclusion
from ballot.issuance import (
    CastingIdentity,
    InsufficientApprovals,
    NotEligible,
    VoterCredential,
    challenge_msg_hash,
    collect_approvals,
    prepare_issuance,
    register_casting_identity,
    sign_issue,
)
from ballot.sessions import ChallengeMismatch, IssuanceSessionStore, SessionExpired, SessionNotFound
from curves.ed25519 import Ed25519PublicKey
from curves.hashing import cast_msg_hash, issue_msg_hash
from conftest import SESSION_TTL, VOTING_DURATION, cast_vote, issue_identity, make_election
from ledger.errors import (
    DuplicateNullifier,
    InvalidDistributorSignature,
    NotIssuedAccount,
    OutsideVotingWindow,
)
from threshold.errors import SignatureVerificationFailure


# ============================================================================
# ELIGIBILITY
# ============================================================================


@pytest.mark.parametrize("size", [1, 2, 3, 5, 8])
def test_every_leaf_has_a_valid_proof(size):
    leaves = [bytes([i]) * 32 for i in range(size)]
    tree = EligibilityTree(leaves)
    for leaf in leaves:
        assert verify_inclusion(tree.root, leaf, tree.proof(leaf))


def test_proof_does_not_verify_other_leaf():
    leaves = [bytes([i]) * 32 for i in range(4)]
    tree = EligibilityTree(leaves)
    assert not verify_inclusion(tree.root, leaves[1], tree.proof(leaves[0]))
    assert not verify_inclusion(tree.root, b"\xff" * 32, tree.proof(leaves[0]))


def test_unknown_leaf_has_no_proof():
    tree = EligibilityTree([b"\x01" * 32])
    assert b"\x01" * 32 in tree
    with pytest.raises(KeyError):
        tree.proof(b"\x02" * 32)


def test_duplicate_leaves_rejected():
    with pytest.raises(ValueError):
        EligibilityTree([b"\x01" * 32, b"\x01" * 32])


# ============================================================================
# SESSIONS
# ============================================================================


def test_session_is_consumed_once(clock):
    store = IssuanceSessionStore(60, clock)
    session = store.open(0, "abc")
    assert len(store) == 1
    store.consume(0, "abc", session.challenge)
    assert len(store) == 0
    with pytest.raises(SessionNotFound):
        store.consume(0, "abc", session.challenge)


def test_session_challenge_mismatch_keeps_session(clock):
    store = IssuanceSessionStore(60, clock)
    session = store.open(0, "abc")
    with pytest.raises(ChallengeMismatch):
        store.consume(0, "abc", b"\x00" * 32)
    store.consume(0, "abc", session.challenge)


def test_session_expires(clock):
    store = IssuanceSessionStore(60, clock)
    session = store.open(0, "abc")
    store.open(0, "def")
    clock.advance(61)
    with pytest.raises(SessionExpired):
        store.consume(0, "abc", session.challenge)
    assert store.purge_expired() == 1
    assert len(store) == 0


# ============================================================================
# ISSUANCE
# ============================================================================


def test_issuance_spends_issue_nullifier(election):
    voter = election.voters[0]
    identity = issue_identity(election, voter)
    assert election.ledger.is_issue_nullifier_used(election.eid, voter.issue_nullifier(election.eid))
    assert not election.ledger.is_cast_nullifier_used(election.eid, identity.cast_nullifier)


def test_second_identity_for_same_voter_refused(election):
    voter = election.voters[0]
    issue_identity(election, voter)
    with pytest.raises(DuplicateNullifier) as exc_info:
        issue_identity(election, voter)
    assert exc_info.value.kind == "issue"


def test_ledger_refuses_second_registration(election):
    voter = election.voters[1]
    proof = election.tree.proof(voter.public_key)
    first = CastingIdentity.generate(election.eid)
    second = CastingIdentity.generate(election.eid)
    first_approvals = collect_approvals(election.distributors, voter, first, proof, 1)
    second_approvals = collect_approvals(election.distributors, voter, second, proof, 1)

    register_casting_identity(election.ledger, voter, first, first_approvals)
    with pytest.raises(DuplicateNullifier):
        register_casting_identity(election.ledger, voter, second, second_approvals)


def test_ineligible_voter_gets_no_approval(election):
    outsider = VoterCredential.generate("outsider")
    identity = CastingIdentity.generate(election.eid)
    distributor = election.distributors[0]

    challenge = distributor.begin_issuance(election.eid, outsider.public_key)
    request = prepare_issuance(outsider, identity, challenge,
                               election.tree.proof(election.voters[0].public_key))
    with pytest.raises(NotEligible):
        distributor.approve(request)

    with pytest.raises(InsufficientApprovals):
        collect_approvals(election.distributors, outsider, identity,
                          election.tree.proof(election.voters[0].public_key), 1)


def test_challenge_must_be_signed_by_voter(election):
    voter = election.voters[0]
    identity = CastingIdentity.generate(election.eid)
    distributor = election.distributors[0]

    challenge = distributor.begin_issuance(election.eid, voter.public_key)
    request = prepare_issuance(voter, identity, challenge, election.tree.proof(voter.public_key))
    forged = replace(request, challenge_signature=identity.sign(
        challenge_msg_hash(election.eid, challenge)))
    with pytest.raises(SignatureVerificationFailure):
        distributor.approve(forged)


def test_approval_without_session_refused(election):
    voter = election.voters[0]
    identity = CastingIdentity.generate(election.eid)
    request = prepare_issuance(voter, identity, b"\x00" * 32,
                               election.tree.proof(voter.public_key))
    with pytest.raises(SessionNotFound):
        election.distributors[0].approve(request)


def test_expired_session_refused(election):
    voter = election.voters[0]
    identity = CastingIdentity.generate(election.eid)
    distributor = election.distributors[0]
    challenge = distributor.begin_issuance(election.eid, voter.public_key)
    election.clock.advance(SESSION_TTL + 1)
    request = prepare_issuance(voter, identity, challenge, election.tree.proof(voter.public_key))
    with pytest.raises(SessionExpired):
        distributor.approve(request)


def test_approval_signature_verifies(election):
    voter = election.voters[2]
    identity = CastingIdentity.generate(election.eid)
    approvals = collect_approvals(election.distributors, voter, identity,
                                  election.tree.proof(voter.public_key), 1)
    assert len(approvals) == 1
    assert approvals[0].verify()
    assert approvals[0].nf_issue == voter.issue_nullifier(election.eid)
    assert approvals[0].from_dict(approvals[0].to_dict()) == approvals[0]


def test_bare_signature_accepted_by_ledger(election):
    voter = election.voters[1]
    identity = CastingIdentity.generate(election.eid)
    nf_issue = voter.issue_nullifier(election.eid)
    approval = sign_issue(election.distributor_keys[0], election.eid, identity.pk_cast, nf_issue)
    assert approval.verify()
    assert approval.distributor_public_key == election.distributors[0].public_key

    election.ledger.issue_account(election.eid, identity.pk_cast, nf_issue,
                                  [approval.signature_entry])
    assert election.ledger.is_issue_nullifier_used(election.eid, nf_issue)


def test_distributor_quorum(clock, dkg_result):
    env = make_election(clock, dkg_result, num_distributors=3, distributor_threshold=2)
    voter = env.voters[0]
    identity = CastingIdentity.generate(env.eid)
    approvals = collect_approvals(env.distributors, voter, identity,
                                  env.tree.proof(voter.public_key), 2)
    assert len(approvals) == 2

    nf_issue = voter.issue_nullifier(env.eid)
    repeated = [approvals[0].signature_entry, approvals[0].signature_entry]
    with pytest.raises(InvalidDistributorSignature):
        env.ledger.issue_account(env.eid, identity.pk_cast, nf_issue, repeated)

    env.ledger.issue_account(env.eid, identity.pk_cast, nf_issue,
                             [a.signature_entry for a in approvals])
    assert env.ledger.is_issue_nullifier_used(env.eid, nf_issue)


def test_signature_from_outside_roster_ignored(election):
    voter = election.voters[0]
    identity = CastingIdentity.generate(election.eid)
    nf_issue = voter.issue_nullifier(election.eid)
    rogue = VoterCredential.generate("rogue").keypair
    signature = rogue.sign(issue_msg_hash(election.eid, identity.pk_cast, nf_issue))
    with pytest.raises(InvalidDistributorSignature):
        election.ledger.issue_account(election.eid, identity.pk_cast, nf_issue,
                                      [(rogue.public_key, signature)])


# ============================================================================
# CASTING
# ============================================================================


def test_cast_ballot(election):
    index = cast_vote(election, election.voters[0], 2)
    assert index == 0
    assert election.ledger.get_ballot_count(election.eid) == 1


def test_ballot_signature_covers_ciphertext(election):
    identity = issue_identity(election, election.voters[0])
    ballot = prepare_ballot(identity, 1, election.public_key, election.options_count)
    assert ballot.verify_signature()

    other = prepare_ballot(identity, 0, election.public_key, election.options_count)
    tampered = replace(ballot, ciphertext=other.ciphertext)
    assert not tampered.verify_signature()
    with pytest.raises(SignatureVerificationFailure):
        submit_ballot(election.ledger, tampered)

    assert submit_ballot(election.ledger, ballot) == 0


def test_every_cast_message_byte_is_signed(election):
    identity = issue_identity(election, election.voters[0])
    ballot = prepare_ballot(identity, 2, election.public_key, election.options_count)
    signer = Ed25519PublicKey(ballot.pk_cast)
    parts = [ballot.nf_cast, ballot.ciphertext.c1.to_bytes(), ballot.ciphertext.c2.to_bytes()]
    assert signer.verify(ballot.signature, cast_msg_hash(election.eid, *parts))
    assert not signer.verify(ballot.signature, cast_msg_hash(election.eid + 1, *parts))

    for i, part in enumerate(parts):
        for position in range(len(part)):
            altered = bytearray(part)
            altered[position] ^= 0x01
            tampered = list(parts)
            tampered[i] = bytes(altered)
            assert not signer.verify(ballot.signature, cast_msg_hash(election.eid, *tampered))


def test_double_cast_refused(election):
    identity = issue_identity(election, election.voters[0])
    first = prepare_ballot(identity, 1, election.public_key, election.options_count)
    second = prepare_ballot(identity, 2, election.public_key, election.options_count)
    submit_ballot(election.ledger, first)
    with pytest.raises(DuplicateNullifier) as exc_info:
        submit_ballot(election.ledger, second)
    assert exc_info.value.kind == "cast"


def test_unissued_identity_refused(election):
    identity = CastingIdentity.generate(election.eid)
    ballot = prepare_ballot(identity, 0, election.public_key, election.options_count)
    with pytest.raises(NotIssuedAccount):
        submit_ballot(election.ledger, ballot)


def test_cast_after_close_refused(election):
    identity = issue_identity(election, election.voters[0])
    ballot = prepare_ballot(identity, 0, election.public_key, election.options_count)
    election.clock.advance(VOTING_DURATION)
    with pytest.raises(OutsideVotingWindow):
        submit_ballot(election.ledger, ballot)


def test_receipt_data_is_unlinkable_to_voter(election):
    voter = election.voters[0]
    identity = issue_identity(election, voter)
    ballot = prepare_ballot(identity, 0, election.public_key, election.options_count)
    assert ballot.pk_cast != voter.public_key
    assert ballot.nf_cast != voter.issue_nullifier(election.eid)
