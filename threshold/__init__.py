"""Threshold key generation, partial decryption and share handling.

The tally combiner lives in ``threshold.tally`` and is imported directly,
since it depends on the ballot and ledger packages.
"""

from .errors import (
    VotingProtocolError,
    CeremonyVerificationFailure,
    InsufficientShares,
    InvalidBallotDecode,
    SignatureVerificationFailure,
    InconsistentShareSet,
    TallyConflict,
    ShareBlobError,
)
from .dkg import (
    DKGStatus,
    DKGParty,
    DKGCeremony,
    DKGResult,
    KeyHolderShare,
    PolynomialCommitmentSet,
    verify_share,
    combined_public_key_from,
    run_dkg,
)
from .proofs import DLEQProof, prove_dleq, verify_dleq
from .shares import DecryptionShareRecord, serialise_shares, deserialise_shares
from .credentials import (
    KeyHolderCredential,
    CredentialError,
    write_ceremony_output,
    load_credentials_dir,
)
from .decryption import partial_decrypt, build_share_record, audit_share_record

__all__ = [
    # Errors
    'VotingProtocolError',
    'CeremonyVerificationFailure',
    'InsufficientShares',
    'InvalidBallotDecode',
    'SignatureVerificationFailure',
    'InconsistentShareSet',
    'TallyConflict',
    'ShareBlobError',

    # Key generation
    'DKGStatus',
    'DKGParty',
    'DKGCeremony',
    'DKGResult',
    'KeyHolderShare',
    'PolynomialCommitmentSet',
    'verify_share',
    'combined_public_key_from',
    'run_dkg',

    # Decryption shares
    'DLEQProof',
    'prove_dleq',
    'verify_dleq',
    'DecryptionShareRecord',
    'serialise_shares',
    'deserialise_shares',
    'KeyHolderCredential',
    'CredentialError',
    'write_ceremony_output',
    'load_credentials_dir',
    'partial_decrypt',
    'build_share_record',
    'audit_share_record',
]
