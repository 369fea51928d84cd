"""
JSON-over-HTTP client for a ledger service.

Writes are posted as tagged request payloads; reads are plain GETs. Only
transport failures are retried, and a circuit breaker stops hammering a
ledger that keeps failing. Contract refusals come back as numeric codes and
are raised as the matching typed exception.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

from curves.ed25519 import Ed25519PublicKey
from curves.secp256k1 import Point
from threshold.shares import DecryptionShareRecord, SharePair

from .base import LedgerStore
from .errors import LedgerUnavailable, RecordValidationError, error_from_code
from .records import (
    CastRequest,
    DeployRequest,
    ElectionParams,
    EncryptedBallot,
    FinalizeTallyRequest,
    IssueAccountRequest,
    LedgerRequest,
    PostShareRequest,
    parse_point,
)

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Circuit breaker for ledger transport failures"""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60,
                 clock: Callable[[], float] = time.time):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time = None
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN
        self._clock = clock

    def record_failure(self):
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == "HALF_OPEN" or self.failure_count >= self.failure_threshold:
            self.state = "OPEN"
            logger.warning(f"Circuit breaker opened after {self.failure_count} failures")

    def record_success(self):
        if self.state == "HALF_OPEN":
            self.state = "CLOSED"
            self.failure_count = 0
            logger.info("Circuit breaker closed after successful request")
        elif self.state == "CLOSED":
            self.failure_count = max(0, self.failure_count - 1)

    def can_attempt(self) -> bool:
        if self.state == "CLOSED":
            return True
        elif self.state == "OPEN":
            if self._clock() - self.last_failure_time > self.recovery_timeout:
                self.state = "HALF_OPEN"
                return True
            return False
        elif self.state == "HALF_OPEN":
            return True
        return False


class RemoteLedger(LedgerStore):

    def __init__(self, base_url: str, timeout: float = 10.0, max_retries: int = 3,
                 retry_backoff: float = 0.5, session: Optional[requests.Session] = None,
                 circuit_breaker: Optional[CircuitBreaker] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.session = session or requests.Session()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        last_error = None

        for attempt in range(self.max_retries + 1):
            if not self.circuit_breaker.can_attempt():
                raise LedgerUnavailable(f"Circuit breaker open for {self.base_url}")

            try:
                response = self.session.request(method, url, json=payload, timeout=self.timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = e
                self.circuit_breaker.record_failure()
                logger.warning(f"{method} {path} failed (attempt {attempt + 1}): {e}")
            else:
                if response.status_code >= 500:
                    last_error = LedgerUnavailable(
                        f"{method} {path} returned HTTP {response.status_code}")
                    self.circuit_breaker.record_failure()
                    logger.warning(f"{method} {path} returned {response.status_code} "
                                   f"(attempt {attempt + 1})")
                else:
                    self.circuit_breaker.record_success()
                    return self._unwrap(response, method, path)

            if attempt < self.max_retries and self.retry_backoff > 0:
                time.sleep(self.retry_backoff * (2 ** attempt))

        raise LedgerUnavailable(
            f"{method} {path} failed after {self.max_retries + 1} attempts: {last_error}")

    @staticmethod
    def _unwrap(response: requests.Response, method: str, path: str) -> Any:
        try:
            body = response.json()
        except ValueError as e:
            raise RecordValidationError(f"{method} {path} returned non-JSON body") from e
        if not isinstance(body, dict) or 'ok' not in body:
            raise RecordValidationError(f"{method} {path} returned an untagged response")
        if not body['ok']:
            code = body.get('code', 0)
            raise error_from_code(code, body.get('error', f"{method} {path} refused"))
        return body.get('result')

    def _submit(self, request: LedgerRequest) -> Any:
        return self._request("POST", "/requests", request.to_payload())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def deploy(self, params: ElectionParams) -> int:
        return int(self._submit(DeployRequest(params)))

    def set_key_holder_commitment(self, eid: int, kh_index: int, commitment: Point):
        self._request("POST", f"/elections/{eid}/commitments/{kh_index}",
                      {'commitment': commitment.hex()})

    def issue_account(self, eid: int, pk_cast: bytes, nf_issue: bytes,
                      distributor_signatures: Sequence[Tuple[Ed25519PublicKey, bytes]]):
        self._submit(IssueAccountRequest(eid, pk_cast, nf_issue, list(distributor_signatures)))

    def cast(self, eid: int, nf_cast: bytes, c1: Point, c2: Point,
             pk_cast: bytes, signature: bytes) -> int:
        return int(self._submit(CastRequest(eid, nf_cast, c1, c2, pk_cast, signature)))

    def post_share(self, eid: int, kh_index: int, pairs: Sequence[SharePair],
                   kh_public_key: Ed25519PublicKey, signature: bytes) -> int:
        return int(self._submit(
            PostShareRequest(eid, kh_index, list(pairs), kh_public_key, signature)))

    def finalize_tally(self, eid: int, counts: Sequence[int]):
        self._submit(FinalizeTallyRequest(eid, list(counts)))

    def delete_election(self, eid: int):
        self._request("DELETE", f"/elections/{eid}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_election(self, eid: int) -> Optional[ElectionParams]:
        result = self._request("GET", f"/elections/{eid}")
        return None if result is None else ElectionParams.from_payload(result)

    def get_ballot(self, eid: int, index: int) -> Optional[EncryptedBallot]:
        result = self._request("GET", f"/elections/{eid}/ballots/{index}")
        return None if result is None else EncryptedBallot.from_payload(result)

    def get_ballot_count(self, eid: int) -> int:
        return int(self._request("GET", f"/elections/{eid}/ballot_count") or 0)

    def get_kh_shares(self, eid: int, kh_index: int) -> Optional[DecryptionShareRecord]:
        result = self._request("GET", f"/elections/{eid}/shares/{kh_index}")
        if result is None:
            return None
        request = PostShareRequest.from_payload(dict(result, kind=PostShareRequest.kind,
                                                     eid=eid, kh_index=kh_index))
        return DecryptionShareRecord(request.kh_index, request.pairs,
                                     request.kh_public_key, request.signature)

    def get_share_count(self, eid: int) -> int:
        return int(self._request("GET", f"/elections/{eid}/share_count") or 0)

    def get_tally(self, eid: int) -> Optional[List[int]]:
        result = self._request("GET", f"/elections/{eid}/tally")
        return None if result is None else [int(c) for c in result]

    def is_cast_nullifier_used(self, eid: int, nf_cast: bytes) -> bool:
        return bool(self._request("GET", f"/elections/{eid}/nullifiers/cast/{nf_cast.hex()}"))

    def is_issue_nullifier_used(self, eid: int, nf_issue: bytes) -> bool:
        return bool(self._request("GET", f"/elections/{eid}/nullifiers/issue/{nf_issue.hex()}"))

    def get_kh_commitment(self, eid: int, kh_index: int) -> Optional[Point]:
        result = self._request("GET", f"/elections/{eid}/commitments/{kh_index}")
        return None if result is None else parse_point(result, 'commitment')

    def now(self) -> float:
        return time.time()
