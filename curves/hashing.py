"""
Domain-separated SHA-256 hashing for nullifiers and signed messages.

Every digest starts with a fixed ASCII tag. Changing a tag or the field order
is a protocol version bump.
"""

import hashlib
import struct

PROTOCOL_VERSION = 1

ISSUE_TAG = b"stellot:issue"
CAST_TAG = b"stellot:cast"
SHARES_TAG = b"stellot:shares"

DIGEST_SIZE = 32
MAX_ELECTION_ID = 2**64 - 1


def eid_bytes(eid: int) -> bytes:
    """Little-endian u64 encoding of an election id"""
    if isinstance(eid, bool) or not isinstance(eid, int):
        raise TypeError("Election id must be an int")
    if not 0 <= eid <= MAX_ELECTION_ID:
        raise ValueError(f"Election id {eid} does not fit in u64")
    return struct.pack("<Q", eid)


def _fixed(value: bytes, size: int, what: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError(f"{what} must be bytes")
    if len(value) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(value)}")
    return bytes(value)


def _sha256(*parts: bytes) -> bytes:
    h = hashlib.sha256()
    for part in parts:
        h.update(part)
    return h.digest()


def nullifier_issue(voter_secret: bytes, eid: int) -> bytes:
    """SHA256("stellot:issue" || voter_secret || le64(eid))"""
    return _sha256(ISSUE_TAG, _fixed(voter_secret, 32, "voter secret"), eid_bytes(eid))


def nullifier_cast(cast_secret: bytes, eid: int) -> bytes:
    """SHA256("stellot:cast" || cast_secret || le64(eid))"""
    return _sha256(CAST_TAG, _fixed(cast_secret, 32, "casting secret"), eid_bytes(eid))


def issue_msg_hash(eid: int, pk_cast: bytes, nf_issue: bytes) -> bytes:
    """Message a distributor signs to approve a casting identity"""
    return _sha256(
        ISSUE_TAG,
        eid_bytes(eid),
        _fixed(pk_cast, 32, "casting public key"),
        _fixed(nf_issue, DIGEST_SIZE, "issue nullifier"),
    )


def cast_msg_hash(eid: int, nf_cast: bytes, c1: bytes, c2: bytes) -> bytes:
    """Message the casting identity signs over its encrypted ballot"""
    return _sha256(
        CAST_TAG,
        eid_bytes(eid),
        _fixed(nf_cast, DIGEST_SIZE, "cast nullifier"),
        bytes(c1),
        bytes(c2),
    )


def shares_msg_hash(eid: int, shares_blob: bytes) -> bytes:
    """Message a key-holder signs over its serialised decryption shares"""
    return _sha256(SHARES_TAG, eid_bytes(eid), bytes(shares_blob))
