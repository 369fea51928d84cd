"""
Typed ledger records and tagged request payloads.

Every payload crossing the ledger boundary carries a ``kind`` tag and is
validated field by field before reaching the crypto core. Malformed input
raises ``RecordValidationError``.
"""

from dataclasses import dataclass, field, replace
from typing import Any, ClassVar, Dict, List, Tuple

from curves.ed25519 import Ed25519PublicKey
from curves.secp256k1 import Point, PointEncodingError
from threshold.shares import SharePair

from .errors import RecordValidationError

# ============================================================================
# FIELD VALIDATION
# ============================================================================


def _require(payload: Dict[str, Any], key: str):
    if not isinstance(payload, dict):
        raise RecordValidationError(f"Payload must be an object, got {type(payload).__name__}")
    if key not in payload:
        raise RecordValidationError(f"Missing field '{key}'")
    return payload[key]


def _int(payload: Dict[str, Any], key: str, minimum: int = 0) -> int:
    value = _require(payload, key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordValidationError(f"Field '{key}' must be an integer")
    if value < minimum:
        raise RecordValidationError(f"Field '{key}' must be >= {minimum}")
    return value


def _hex_bytes(payload: Dict[str, Any], key: str, size: int = None) -> bytes:
    value = _require(payload, key)
    if not isinstance(value, str):
        raise RecordValidationError(f"Field '{key}' must be a hex string")
    try:
        raw = bytes.fromhex(value)
    except ValueError as e:
        raise RecordValidationError(f"Field '{key}' is not valid hex") from e
    if size is not None and len(raw) != size:
        raise RecordValidationError(f"Field '{key}' must be {size} bytes, got {len(raw)}")
    return raw


def _options_count(value: int) -> int:
    # ballot.elgamal imports the ledger through ballot.casting
    from ballot.elgamal import validate_options_count
    try:
        return validate_options_count(value)
    except (TypeError, ValueError) as e:
        raise RecordValidationError(str(e)) from e


def parse_point(value: Any, key: str) -> Point:
    if not isinstance(value, str):
        raise RecordValidationError(f"Field '{key}' must be a hex string")
    try:
        return Point.from_hex(value)
    except (PointEncodingError, TypeError) as e:
        raise RecordValidationError(f"Field '{key}' is not a compressed point: {e}") from e


def _ed_key(value: Any, key: str) -> Ed25519PublicKey:
    if not isinstance(value, str):
        raise RecordValidationError(f"Field '{key}' must be a hex string")
    try:
        return Ed25519PublicKey.from_hex(value)
    except (TypeError, ValueError) as e:
        raise RecordValidationError(f"Field '{key}' is not an Ed25519 key: {e}") from e


def _list(payload: Dict[str, Any], key: str) -> list:
    value = _require(payload, key)
    if not isinstance(value, list):
        raise RecordValidationError(f"Field '{key}' must be a list")
    return value


# ============================================================================
# STORED RECORDS
# ============================================================================


@dataclass
class ElectionParams:
    """Election state as held by the ledger"""
    title: str
    options_count: int
    start_time: int
    end_time: int
    combined_public_key: Point
    eligibility_root: bytes
    distributor_roster: List[Ed25519PublicKey]
    distributor_threshold: int
    key_holder_roster: List[Ed25519PublicKey]
    key_holder_threshold: int
    id: int = 0
    tallied: bool = False

    def is_open(self, now: float) -> bool:
        return self.start_time <= now < self.end_time

    def is_closed(self, now: float) -> bool:
        return now >= self.end_time

    def with_id(self, eid: int) -> "ElectionParams":
        return replace(self.copy(), id=eid)

    def copy(self) -> "ElectionParams":
        """Detached copy; the rosters are not shared with the original"""
        return replace(self, distributor_roster=list(self.distributor_roster),
                       key_holder_roster=list(self.key_holder_roster))

    def to_payload(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'options_count': self.options_count,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'combined_public_key': self.combined_public_key.hex(),
            'eligibility_root': self.eligibility_root.hex(),
            'distributor_roster': [k.hex() for k in self.distributor_roster],
            'distributor_threshold': self.distributor_threshold,
            'key_holder_roster': [k.hex() for k in self.key_holder_roster],
            'key_holder_threshold': self.key_holder_threshold,
            'tallied': self.tallied,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ElectionParams":
        title = _require(payload, 'title')
        if not isinstance(title, str):
            raise RecordValidationError("Field 'title' must be a string")
        tallied = payload.get('tallied', False)
        if not isinstance(tallied, bool):
            raise RecordValidationError("Field 'tallied' must be a boolean")
        return cls(
            id=_int(payload, 'id') if 'id' in payload else 0,
            title=title,
            options_count=_options_count(_int(payload, 'options_count')),
            start_time=_int(payload, 'start_time'),
            end_time=_int(payload, 'end_time'),
            combined_public_key=parse_point(_require(payload, 'combined_public_key'),
                                       'combined_public_key'),
            eligibility_root=_hex_bytes(payload, 'eligibility_root', 32),
            distributor_roster=[_ed_key(k, 'distributor_roster')
                                for k in _list(payload, 'distributor_roster')],
            distributor_threshold=_int(payload, 'distributor_threshold', 1),
            key_holder_roster=[_ed_key(k, 'key_holder_roster')
                               for k in _list(payload, 'key_holder_roster')],
            key_holder_threshold=_int(payload, 'key_holder_threshold', 1),
            tallied=tallied,
        )

    def validate(self):
        """Deploy-time consistency checks"""
        if self.end_time <= self.start_time:
            raise RecordValidationError("end_time must be after start_time")
        _options_count(self.options_count)
        if len(self.eligibility_root) != 32:
            raise RecordValidationError("eligibility_root must be 32 bytes")
        if self.combined_public_key.is_identity:
            raise RecordValidationError("combined_public_key must not be the identity")
        if not 1 <= self.distributor_threshold <= len(self.distributor_roster):
            raise RecordValidationError("distributor_threshold outside 1..len(roster)")
        if not 1 <= self.key_holder_threshold <= len(self.key_holder_roster):
            raise RecordValidationError("key_holder_threshold outside 1..len(roster)")


@dataclass(frozen=True)
class EncryptedBallot:
    nf_cast: bytes
    c1: Point
    c2: Point

    def to_payload(self) -> Dict[str, str]:
        return {'nf_cast': self.nf_cast.hex(), 'c1': self.c1.hex(), 'c2': self.c2.hex()}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "EncryptedBallot":
        return cls(
            nf_cast=_hex_bytes(payload, 'nf_cast', 32),
            c1=parse_point(_require(payload, 'c1'), 'c1'),
            c2=parse_point(_require(payload, 'c2'), 'c2'),
        )


# ============================================================================
# REQUESTS
# ============================================================================


class LedgerRequest:
    """Base for tagged request records"""
    kind: ClassVar[str] = ""

    def _fields(self) -> Dict[str, Any]:
        raise NotImplementedError

    def to_payload(self) -> Dict[str, Any]:
        payload = {'kind': self.kind}
        payload.update(self._fields())
        return payload

    @classmethod
    def _check_kind(cls, payload: Dict[str, Any]):
        kind = _require(payload, 'kind')
        if kind != cls.kind:
            raise RecordValidationError(f"Expected kind '{cls.kind}', got '{kind}'")


@dataclass
class DeployRequest(LedgerRequest):
    kind: ClassVar[str] = "deploy"
    params: ElectionParams

    def _fields(self):
        return {'params': self.params.to_payload()}

    @classmethod
    def from_payload(cls, payload):
        cls._check_kind(payload)
        return cls(ElectionParams.from_payload(_require(payload, 'params')))


@dataclass
class IssueAccountRequest(LedgerRequest):
    kind: ClassVar[str] = "issue_account"
    eid: int
    pk_cast: bytes
    nf_issue: bytes
    distributor_signatures: List[Tuple[Ed25519PublicKey, bytes]] = field(default_factory=list)

    def _fields(self):
        return {
            'eid': self.eid,
            'pk_cast': self.pk_cast.hex(),
            'nf_issue': self.nf_issue.hex(),
            'dist_sigs': [{'dist_pk': pk.hex(), 'dist_sig': sig.hex()}
                          for pk, sig in self.distributor_signatures],
        }

    @classmethod
    def from_payload(cls, payload):
        cls._check_kind(payload)
        signatures = []
        for entry in _list(payload, 'dist_sigs'):
            signatures.append((_ed_key(_require(entry, 'dist_pk'), 'dist_pk'),
                               _hex_bytes(entry, 'dist_sig', 64)))
        return cls(
            eid=_int(payload, 'eid'),
            pk_cast=_hex_bytes(payload, 'pk_cast', 32),
            nf_issue=_hex_bytes(payload, 'nf_issue', 32),
            distributor_signatures=signatures,
        )


@dataclass
class CastRequest(LedgerRequest):
    kind: ClassVar[str] = "cast"
    eid: int
    nf_cast: bytes
    c1: Point
    c2: Point
    pk_cast: bytes
    signature: bytes

    def _fields(self):
        return {
            'eid': self.eid,
            'nf_cast': self.nf_cast.hex(),
            'c1': self.c1.hex(),
            'c2': self.c2.hex(),
            'pk_cast': self.pk_cast.hex(),
            'sig': self.signature.hex(),
        }

    @classmethod
    def from_payload(cls, payload):
        cls._check_kind(payload)
        return cls(
            eid=_int(payload, 'eid'),
            nf_cast=_hex_bytes(payload, 'nf_cast', 32),
            c1=parse_point(_require(payload, 'c1'), 'c1'),
            c2=parse_point(_require(payload, 'c2'), 'c2'),
            pk_cast=_hex_bytes(payload, 'pk_cast', 32),
            signature=_hex_bytes(payload, 'sig', 64),
        )


@dataclass
class PostShareRequest(LedgerRequest):
    kind: ClassVar[str] = "post_share"
    eid: int
    kh_index: int
    pairs: List[SharePair]
    kh_public_key: Ed25519PublicKey
    signature: bytes

    def _fields(self):
        return {
            'eid': self.eid,
            'kh_index': self.kh_index,
            'shares': [{'c1': c1.hex(), 'd': d.hex()} for c1, d in self.pairs],
            'kh_pk': self.kh_public_key.hex(),
            'sig': self.signature.hex(),
        }

    @classmethod
    def from_payload(cls, payload):
        cls._check_kind(payload)
        pairs = [(parse_point(_require(s, 'c1'), 'c1'), parse_point(_require(s, 'd'), 'd'))
                 for s in _list(payload, 'shares')]
        return cls(
            eid=_int(payload, 'eid'),
            kh_index=_int(payload, 'kh_index', 1),
            pairs=pairs,
            kh_public_key=_ed_key(_require(payload, 'kh_pk'), 'kh_pk'),
            signature=_hex_bytes(payload, 'sig', 64),
        )


@dataclass
class FinalizeTallyRequest(LedgerRequest):
    kind: ClassVar[str] = "finalize_tally"
    eid: int
    counts: List[int]

    def _fields(self):
        return {'eid': self.eid, 'counts': list(self.counts)}

    @classmethod
    def from_payload(cls, payload):
        cls._check_kind(payload)
        counts = _list(payload, 'counts')
        if any(isinstance(c, bool) or not isinstance(c, int) or c < 0 for c in counts):
            raise RecordValidationError("Tally counts must be non-negative integers")
        return cls(eid=_int(payload, 'eid'), counts=counts)


REQUEST_TYPES = {cls.kind: cls for cls in (
    DeployRequest, IssueAccountRequest, CastRequest, PostShareRequest, FinalizeTallyRequest)}


def parse_request(payload: Dict[str, Any]) -> LedgerRequest:
    """Dispatch a tagged payload to its request type"""
    kind = _require(payload, 'kind')
    request_type = REQUEST_TYPES.get(kind)
    if request_type is None:
        raise RecordValidationError(f"Unknown request kind '{kind}'")
    return request_type.from_payload(payload)
