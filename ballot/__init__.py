"""Ballot encryption, eligibility, issuance and casting."""

from .elgamal import (
    MAX_OPTIONS_COUNT,
    Ciphertext,
    encrypt,
    decrypt,
    decode_vote,
    validate_options_count,
)
from .eligibility import EligibilityTree, verify_inclusion
from .sessions import (
    IssuanceSessionStore,
    SessionError,
    SessionNotFound,
    SessionExpired,
    ChallengeMismatch,
)
from .issuance import (
    VoterCredential,
    CastingIdentity,
    IssuanceRequest,
    DistributorApproval,
    Distributor,
    NotEligible,
    InsufficientApprovals,
    prepare_issuance,
    collect_approvals,
    register_casting_identity,
    sign_issue,
)
from .casting import CastBallot, prepare_ballot, submit_ballot

__all__ = [
    'MAX_OPTIONS_COUNT',
    'Ciphertext',
    'encrypt',
    'decrypt',
    'decode_vote',
    'validate_options_count',
    'EligibilityTree',
    'verify_inclusion',
    'IssuanceSessionStore',
    'SessionError',
    'SessionNotFound',
    'SessionExpired',
    'ChallengeMismatch',
    'VoterCredential',
    'CastingIdentity',
    'IssuanceRequest',
    'DistributorApproval',
    'Distributor',
    'NotEligible',
    'InsufficientApprovals',
    'prepare_issuance',
    'collect_approvals',
    'register_casting_identity',
    'sign_issue',
    'CastBallot',
    'prepare_ballot',
    'submit_ballot',
]
