"""
Decryption share records and their signed wire format.

Blob layout (all integers little-endian):

    u32 count
    repeat count times:
        u32 len || C1 bytes || u32 len || D bytes
"""

import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from curves.ed25519 import Ed25519PublicKey
from curves.hashing import shares_msg_hash
from curves.secp256k1 import Point, PointEncodingError

from .errors import ShareBlobError
from .proofs import DLEQProof

SharePair = Tuple[Point, Point]

_U32 = struct.Struct("<I")


def serialise_shares(pairs: Sequence[SharePair]) -> bytes:
    out = bytearray(_U32.pack(len(pairs)))
    for c1, d in pairs:
        for point in (c1, d):
            raw = point.to_bytes()
            out += _U32.pack(len(raw))
            out += raw
    return bytes(out)


def _read_u32(blob: bytes, offset: int) -> Tuple[int, int]:
    if offset + _U32.size > len(blob):
        raise ShareBlobError(f"Blob truncated reading length at offset {offset}")
    return _U32.unpack_from(blob, offset)[0], offset + _U32.size


def _read_point(blob: bytes, offset: int) -> Tuple[Point, int]:
    length, offset = _read_u32(blob, offset)
    end = offset + length
    if end > len(blob):
        raise ShareBlobError(f"Blob truncated: need {length} bytes at offset {offset}")
    try:
        point = Point.from_bytes(blob[offset:end])
    except PointEncodingError as e:
        raise ShareBlobError(f"Invalid point at offset {offset}: {e}") from e
    return point, end


def deserialise_shares(blob: bytes) -> List[SharePair]:
    count, offset = _read_u32(blob, 0)
    pairs = []
    for _ in range(count):
        c1, offset = _read_point(blob, offset)
        d, offset = _read_point(blob, offset)
        pairs.append((c1, d))
    if offset != len(blob):
        raise ShareBlobError(f"{len(blob) - offset} trailing bytes after {count} pairs")
    return pairs


@dataclass
class DecryptionShareRecord:
    """One key-holder's signed partial decryptions for every ballot it saw"""
    kh_index: int
    pairs: List[SharePair]
    kh_public_key: Ed25519PublicKey
    signature: bytes
    proofs: Optional[List[DLEQProof]] = field(default=None, repr=False)

    def __post_init__(self):
        if self.kh_index <= 0:
            raise ValueError("Key-holder index must be positive (1-based)")
        if not isinstance(self.kh_public_key, Ed25519PublicKey):
            raise TypeError("kh_public_key must be an Ed25519PublicKey")
        if self.proofs is not None and len(self.proofs) != len(self.pairs):
            raise ValueError("One proof per share pair is required")

    def blob(self) -> bytes:
        return serialise_shares(self.pairs)

    def message_hash(self, eid: int) -> bytes:
        return shares_msg_hash(eid, self.blob())

    def verify_signature(self, eid: int) -> bool:
        return self.kh_public_key.verify(self.signature, self.message_hash(eid))

    @property
    def c1_list(self) -> List[Point]:
        return [c1 for c1, _ in self.pairs]

    def partial_for(self, c1: Point) -> Optional[Point]:
        for candidate, d in self.pairs:
            if candidate == c1:
                return d
        return None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'kh_index': self.kh_index,
            'shares': [{'c1': c1.hex(), 'd': d.hex()} for c1, d in self.pairs],
            'kh_pk': self.kh_public_key.hex(),
            'signature': self.signature.hex(),
        }
        if self.proofs is not None:
            data['proofs'] = [p.to_dict() for p in self.proofs]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecryptionShareRecord":
        try:
            pairs = [(Point.from_hex(s['c1']), Point.from_hex(s['d'])) for s in data['shares']]
            proofs = None
            if data.get('proofs') is not None:
                proofs = [DLEQProof.from_dict(p) for p in data['proofs']]
            return cls(
                kh_index=int(data['kh_index']),
                pairs=pairs,
                kh_public_key=Ed25519PublicKey.from_hex(data['kh_pk']),
                signature=bytes.fromhex(data['signature']),
                proofs=proofs,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ShareBlobError(f"Malformed share record: {e}") from e
