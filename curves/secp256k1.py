"""
secp256k1 group arithmetic for threshold ElGamal
=================================================
Scalars are plain ints reduced mod the group order Q. Points are wrapped in
``Point`` so they cannot be confused with Ed25519 key material.
"""

import logging
import secrets
from typing import Iterable, Optional, Sequence

from ecdsa import SECP256k1
from ecdsa.ellipticcurve import INFINITY, PointJacobi
from ecdsa.errors import MalformedPointError

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

CURVE = SECP256k1.curve
GENERATOR = SECP256k1.generator
Q = SECP256k1.order
P = CURVE.p()

COMPRESSED_POINT_SIZE = 33
SCALAR_SIZE = 32


class PointEncodingError(ValueError):
    """Raised when bytes do not decode to a valid compressed secp256k1 point"""
    pass


# ============================================================================
# SCALAR ARITHMETIC (mod Q)
# ============================================================================


def normalize(x: int) -> int:
    """Reduce x into [0, Q)"""
    return ((x % Q) + Q) % Q


def add(a: int, b: int) -> int:
    return normalize(a + b)


def sub(a: int, b: int) -> int:
    return normalize(a - b)


def mul(a: int, b: int) -> int:
    return normalize(a * b)


def power(base: int, exponent: int) -> int:
    return pow(normalize(base), exponent, Q)


def inverse(a: int) -> int:
    """Modular inverse using Fermat's little theorem (Q is prime)"""
    a = normalize(a)
    if a == 0:
        raise ZeroDivisionError("0 has no inverse mod Q")
    return pow(a, Q - 2, Q)


def random_scalar() -> int:
    """Uniform scalar in [1, Q-1] from the OS CSPRNG"""
    return secrets.randbelow(Q - 1) + 1


def lagrange_coefficient(j: int, indices: Sequence[int]) -> int:
    """Lagrange coefficient at x=0 for party j over the index set.

    lambda_j = prod_{k in S, k != j} k / (k - j)  mod Q
    """
    index_set = list(indices)
    if len(set(index_set)) != len(index_set):
        raise ValueError(f"Duplicate indices in Lagrange set: {index_set}")
    if any(k <= 0 for k in index_set):
        raise ValueError(f"Lagrange indices must be positive: {index_set}")
    if j not in index_set:
        raise ValueError(f"Index {j} is not part of the set {index_set}")

    numerator = 1
    denominator = 1
    for k in index_set:
        if k == j:
            continue
        numerator = mul(numerator, k)
        denominator = mul(denominator, k - j)
    return mul(numerator, inverse(denominator))


def evaluate_polynomial(coefficients: Sequence[int], x: int) -> int:
    """Evaluate sum(a_k * x^k) mod Q"""
    result = 0
    x_power = 1
    for coeff in coefficients:
        result = (result + coeff * x_power) % Q
        x_power = (x_power * x) % Q
    return normalize(result)


def scalar_to_hex(value: int) -> str:
    return normalize(value).to_bytes(SCALAR_SIZE, "big").hex()


def scalar_from_hex(value: str) -> int:
    if len(value) != SCALAR_SIZE * 2:
        raise ValueError(f"Scalar hex must be {SCALAR_SIZE * 2} chars, got {len(value)}")
    scalar = int(value, 16)
    if not 0 < scalar < Q:
        raise ValueError("Scalar out of range [1, Q-1]")
    return scalar


# ============================================================================
# POINTS
# ============================================================================


def _is_infinity(inner) -> bool:
    return inner is None or inner is INFINITY or inner == INFINITY


class Point:
    """Immutable secp256k1 group element (identity held as ``None``)"""

    __slots__ = ("_inner",)

    def __init__(self, inner: Optional[PointJacobi] = None):
        self._inner = None if _is_infinity(inner) else inner

    @classmethod
    def generator(cls) -> "Point":
        return cls(GENERATOR)

    @classmethod
    def identity(cls) -> "Point":
        return cls(None)

    @classmethod
    def base_mul(cls, scalar: int) -> "Point":
        """scalar * G using the precomputed generator table"""
        scalar = normalize(scalar)
        if scalar == 0:
            return cls.identity()
        return cls(GENERATOR * scalar)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Point":
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("Point encoding must be bytes")
        if len(data) != COMPRESSED_POINT_SIZE or data[0] not in (2, 3):
            raise PointEncodingError(
                f"Expected {COMPRESSED_POINT_SIZE}-byte compressed point, got {len(data)} bytes")
        try:
            inner = PointJacobi.from_bytes(
                CURVE, bytes(data), valid_encodings=("compressed",), order=Q)
        except (MalformedPointError, ValueError) as e:
            raise PointEncodingError(f"Invalid secp256k1 point: {e}") from e
        return cls(inner)

    @classmethod
    def from_hex(cls, value: str) -> "Point":
        try:
            raw = bytes.fromhex(value)
        except ValueError as e:
            raise PointEncodingError(f"Point hex is not valid hex: {e}") from e
        return cls.from_bytes(raw)

    @property
    def is_identity(self) -> bool:
        return self._inner is None

    def to_bytes(self) -> bytes:
        if self._inner is None:
            raise PointEncodingError("The identity element has no compressed encoding")
        return self._inner.to_bytes("compressed")

    def hex(self) -> str:
        return self.to_bytes().hex()

    def __add__(self, other: "Point") -> "Point":
        if not isinstance(other, Point):
            return NotImplemented
        if self._inner is None:
            return other
        if other._inner is None:
            return self
        return Point(self._inner + other._inner)

    def __neg__(self) -> "Point":
        if self._inner is None:
            return self
        x = self._inner.x()
        y = self._inner.y()
        return Point(PointJacobi(CURVE, x, (-y) % P, 1, Q))

    def __sub__(self, other: "Point") -> "Point":
        if not isinstance(other, Point):
            return NotImplemented
        return self + (-other)

    def __mul__(self, scalar: int) -> "Point":
        if isinstance(scalar, bool) or not isinstance(scalar, int):
            return NotImplemented
        scalar = normalize(scalar)
        if scalar == 0 or self._inner is None:
            return Point.identity()
        return Point(self._inner * scalar)

    __rmul__ = __mul__

    def __eq__(self, other) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        if self._inner is None or other._inner is None:
            return self._inner is None and other._inner is None
        return self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(b"" if self._inner is None else self.to_bytes())

    def __repr__(self) -> str:
        if self._inner is None:
            return "Point(identity)"
        return f"Point({self.hex()[:16]}...)"


def sum_points(points: Iterable[Point]) -> Point:
    total = Point.identity()
    for point in points:
        total = total + point
    return total
