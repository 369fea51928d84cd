"""
Exponential ElGamal ballots over secp256k1.

A vote v is encoded as (v+1)*G so that option 0 never encrypts the identity.
Recovery is a brute-force discrete log, which bounds the option space: see
MAX_OPTIONS_COUNT.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from curves.secp256k1 import COMPRESSED_POINT_SIZE, Q, Point, random_scalar
from threshold.errors import InvalidBallotDecode

logger = logging.getLogger(__name__)

# Protocol parameter: decode cost is linear in the option count
MAX_OPTIONS_COUNT = 256
MIN_OPTIONS_COUNT = 2


def validate_options_count(options_count: int) -> int:
    if isinstance(options_count, bool) or not isinstance(options_count, int):
        raise TypeError("options_count must be an int")
    if not MIN_OPTIONS_COUNT <= options_count <= MAX_OPTIONS_COUNT:
        raise ValueError(
            f"options_count must be in [{MIN_OPTIONS_COUNT}, {MAX_OPTIONS_COUNT}], got {options_count}")
    return options_count


@dataclass(frozen=True)
class Ciphertext:
    c1: Point
    c2: Point

    def to_bytes(self) -> bytes:
        return self.c1.to_bytes() + self.c2.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> "Ciphertext":
        if len(data) != 2 * COMPRESSED_POINT_SIZE:
            raise ValueError(f"Ciphertext must be {2 * COMPRESSED_POINT_SIZE} bytes")
        return cls(Point.from_bytes(data[:COMPRESSED_POINT_SIZE]),
                   Point.from_bytes(data[COMPRESSED_POINT_SIZE:]))

    def to_hex(self) -> Dict[str, str]:
        return {'c1': self.c1.hex(), 'c2': self.c2.hex()}

    @classmethod
    def from_hex(cls, data: Dict[str, str]) -> "Ciphertext":
        return cls(Point.from_hex(data['c1']), Point.from_hex(data['c2']))


def encrypt(vote: int, public_key: Point, options_count: Optional[int] = None,
            randomness: Optional[int] = None) -> Ciphertext:
    """C1 = r*G, C2 = (v+1)*G + r*PK"""
    if isinstance(vote, bool) or not isinstance(vote, int):
        raise TypeError("vote must be an int")
    if vote < 0:
        raise ValueError(f"vote must be non-negative, got {vote}")
    if options_count is not None and vote >= options_count:
        raise ValueError(f"vote {vote} outside [0, {options_count})")
    if not isinstance(public_key, Point):
        raise TypeError("public_key must be a secp256k1 Point")
    if public_key.is_identity:
        raise ValueError("public_key must not be the identity")

    r = random_scalar() if randomness is None else randomness
    if not 0 < r < Q:
        raise ValueError("ElGamal randomness must be in [1, Q-1]")

    c1 = Point.base_mul(r)
    c2 = Point.base_mul(vote + 1) + public_key * r
    return Ciphertext(c1, c2)


def decode_vote(plaintext_point: Point, options_count: int) -> int:
    """Find v with (v+1)*G == plaintext_point, for v < options_count"""
    if options_count < 1 or options_count > MAX_OPTIONS_COUNT:
        raise ValueError(f"options_count must be in [1, {MAX_OPTIONS_COUNT}]")
    if plaintext_point.is_identity:
        raise InvalidBallotDecode("Plaintext is the identity element")

    generator = Point.generator()
    acc = generator
    for v in range(options_count):
        if acc == plaintext_point:
            return v
        acc = acc + generator
    raise InvalidBallotDecode(f"No option in [0, {options_count}) matches the plaintext point")


def decrypt(ciphertext: Ciphertext, decryption_point: Point, options_count: int) -> int:
    """Recover the vote given D = sk*C1 (already combined)"""
    return decode_vote(ciphertext.c2 - decryption_point, options_count)
