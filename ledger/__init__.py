"""Ledger collaborator: records, interface, in-memory and HTTP stores."""

from .errors import (
    LedgerError,
    ElectionAlreadyExists,
    ElectionNotFound,
    OutsideVotingWindow,
    DuplicateNullifier,
    NotIssuedAccount,
    InvalidMerkleProof,
    NotKeyHolder,
    AlreadyPosted,
    InvalidTally,
    AlreadyTallied,
    InvalidDistributorSignature,
    NotDistributor,
    RecordValidationError,
    LedgerUnavailable,
    error_code,
    error_from_code,
)
from .records import (
    ElectionParams,
    EncryptedBallot,
    LedgerRequest,
    DeployRequest,
    IssueAccountRequest,
    CastRequest,
    PostShareRequest,
    FinalizeTallyRequest,
    parse_request,
)
from .base import LedgerStore
from .memory import InMemoryLedger
from .remote import RemoteLedger, CircuitBreaker

__all__ = [
    'LedgerError',
    'ElectionAlreadyExists',
    'ElectionNotFound',
    'OutsideVotingWindow',
    'DuplicateNullifier',
    'NotIssuedAccount',
    'InvalidMerkleProof',
    'NotKeyHolder',
    'AlreadyPosted',
    'InvalidTally',
    'AlreadyTallied',
    'InvalidDistributorSignature',
    'NotDistributor',
    'RecordValidationError',
    'LedgerUnavailable',
    'error_code',
    'error_from_code',
    'ElectionParams',
    'EncryptedBallot',
    'LedgerRequest',
    'DeployRequest',
    'IssueAccountRequest',
    'CastRequest',
    'PostShareRequest',
    'FinalizeTallyRequest',
    'parse_request',
    'LedgerStore',
    'InMemoryLedger',
    'RemoteLedger',
    'CircuitBreaker',
]
