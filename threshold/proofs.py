"""
Chaum-Pedersen proof of discrete-log equality.

Proves log_G(PK_j) == log_C1(D_j) for a partial decryption D_j = sk_j * C1
without revealing sk_j. The challenge hashes the compressed encodings of
G, PK_j, C1, D_j, R1, R2 in that order.
"""

import hashlib
from dataclasses import dataclass
from typing import Dict, Optional

from curves import secp256k1
from curves.secp256k1 import Point, PointEncodingError, random_scalar


@dataclass(frozen=True)
class DLEQProof:
    r1: Point
    r2: Point
    s: int

    def to_dict(self) -> Dict[str, str]:
        return {
            'r1': self.r1.hex(),
            'r2': self.r2.hex(),
            's': secp256k1.scalar_to_hex(self.s),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "DLEQProof":
        s = int(data['s'], 16)
        if not 0 <= s < secp256k1.Q:
            raise ValueError("Proof response out of range")
        return cls(Point.from_hex(data['r1']), Point.from_hex(data['r2']), s)


def challenge(public_share: Point, c1: Point, d: Point, r1: Point, r2: Point) -> int:
    h = hashlib.sha256()
    for point in (Point.generator(), public_share, c1, d, r1, r2):
        h.update(point.to_bytes())
    return int.from_bytes(h.digest(), "big") % secp256k1.Q


def prove_dleq(secret: int, c1: Point, d: Optional[Point] = None,
               nonce: Optional[int] = None) -> DLEQProof:
    """Proof that d == secret * c1 and PK == secret * G share one exponent"""
    public_share = Point.base_mul(secret)
    if d is None:
        d = c1 * secret
    r = random_scalar() if nonce is None else nonce
    r1 = Point.base_mul(r)
    r2 = c1 * r
    c = challenge(public_share, c1, d, r1, r2)
    s = secp256k1.add(r, secp256k1.mul(c, secret))
    return DLEQProof(r1, r2, s)


def verify_dleq(public_share: Point, c1: Point, d: Point, proof: DLEQProof) -> bool:
    """s*G == R1 + c*PK_j and s*C1 == R2 + c*D_j"""
    try:
        c = challenge(public_share, c1, d, proof.r1, proof.r2)
    except PointEncodingError:
        # one of the inputs is the identity, which is never a valid share
        return False
    if Point.base_mul(proof.s) != proof.r1 + public_share * c:
        return False
    return c1 * proof.s == proof.r2 + d * c
