"""Curve arithmetic, identity keys and domain-separated hashing."""

from .secp256k1 import (
    Q,
    COMPRESSED_POINT_SIZE,
    SCALAR_SIZE,
    Point,
    PointEncodingError,
    random_scalar,
    inverse,
    lagrange_coefficient,
    evaluate_polynomial,
    scalar_to_hex,
    scalar_from_hex,
    sum_points,
)
from .ed25519 import Ed25519Keypair, Ed25519PublicKey
from .hashing import (
    PROTOCOL_VERSION,
    nullifier_issue,
    nullifier_cast,
    issue_msg_hash,
    cast_msg_hash,
    shares_msg_hash,
)

__all__ = [
    'Q',
    'COMPRESSED_POINT_SIZE',
    'SCALAR_SIZE',
    'Point',
    'PointEncodingError',
    'random_scalar',
    'inverse',
    'lagrange_coefficient',
    'evaluate_polynomial',
    'scalar_to_hex',
    'scalar_from_hex',
    'sum_points',
    'Ed25519Keypair',
    'Ed25519PublicKey',
    'PROTOCOL_VERSION',
    'nullifier_issue',
    'nullifier_cast',
    'issue_msg_hash',
    'cast_msg_hash',
    'shares_msg_hash',
]
