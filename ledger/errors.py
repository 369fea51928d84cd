"""
Ledger boundary errors.

Codes follow the election contract's error numbering so a remote ledger's
numeric error can be mapped back to a typed exception.
"""

from typing import Dict, Type

from threshold.errors import (
    InsufficientShares,
    SignatureVerificationFailure,
    TallyConflict,
    VotingProtocolError,
)


class LedgerError(VotingProtocolError):
    """Base exception for ledger refusals"""
    code = 0


class ElectionAlreadyExists(LedgerError):
    code = 1


class ElectionNotFound(LedgerError):
    code = 2


class OutsideVotingWindow(LedgerError):
    code = 3


class DuplicateNullifier(LedgerError):
    """Issuance or cast nullifier already spent"""
    code = 5

    def __init__(self, message: str, kind: str = "cast"):
        super().__init__(message)
        self.kind = kind


class NotIssuedAccount(LedgerError):
    code = 6


class InvalidMerkleProof(LedgerError):
    code = 8


class NotKeyHolder(LedgerError):
    code = 9


class AlreadyPosted(LedgerError):
    code = 10


class InvalidTally(LedgerError):
    code = 12


class AlreadyTallied(LedgerError):
    code = 13


class InvalidDistributorSignature(LedgerError):
    code = 14


class NotDistributor(LedgerError):
    code = 15


class RecordValidationError(LedgerError):
    """Malformed request or response payload"""
    code = 16


class LedgerUnavailable(LedgerError):
    """Transport failure; the only ledger error that may be retried"""
    code = -1


# Contract codes that map to the core protocol errors
ISSUE_NULLIFIER_CODE = 4
INVALID_SIGNATURE_CODE = 7
INSUFFICIENT_SHARES_CODE = 11

ERROR_CODES: Dict[int, Type[LedgerError]] = {
    cls.code: cls for cls in (
        ElectionAlreadyExists, ElectionNotFound, OutsideVotingWindow,
        DuplicateNullifier, NotIssuedAccount, InvalidMerkleProof, NotKeyHolder,
        AlreadyPosted, InvalidTally, AlreadyTallied, InvalidDistributorSignature,
        NotDistributor, RecordValidationError,
    )
}


def error_code(exc: Exception) -> int:
    """Numeric code of a refusal raised by a ledger"""
    if isinstance(exc, DuplicateNullifier) and exc.kind == "issue":
        return ISSUE_NULLIFIER_CODE
    if isinstance(exc, LedgerError):
        return exc.code
    if isinstance(exc, SignatureVerificationFailure):
        return INVALID_SIGNATURE_CODE
    if isinstance(exc, InsufficientShares):
        return INSUFFICIENT_SHARES_CODE
    if isinstance(exc, TallyConflict):
        return AlreadyTallied.code
    return 0


def error_from_code(code: int, message: str) -> VotingProtocolError:
    """Typed exception for a numeric contract error"""
    if code == ISSUE_NULLIFIER_CODE:
        return DuplicateNullifier(message, kind="issue")
    if code == INVALID_SIGNATURE_CODE:
        return SignatureVerificationFailure(message)
    if code == INSUFFICIENT_SHARES_CODE:
        return InsufficientShares(message)
    cls = ERROR_CODES.get(code)
    if cls is None:
        return LedgerError(f"Ledger error {code}: {message}")
    return cls(message)
