import pytest
import requests

from curves.ed25519 import Ed25519Keypair
from curves.hashing import shares_msg_hash
from curves.secp256k1 import Point
from election_system import ManualClock
from ledger.errors import (
    DuplicateNullifier,
    LedgerUnavailable,
    OutsideVotingWindow,
    RecordValidationError,
)
from ledger.remote import CircuitBreaker, RemoteLedger
from threshold.shares import serialise_shares


class FakeResponse:

    def __init__(self, status_code=200, body=None, raw=False):
        self.status_code = status_code
        self._body = body
        self._raw = raw

    def json(self):
        if self._raw:
            raise ValueError("not json")
        return self._body


class FakeSession:
    """Replays scripted responses and records every call"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, json=None, timeout=None):
        self.calls.append((method, url, json))
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def ok(result):
    return FakeResponse(200, {'ok': True, 'result': result})


def refused(code, message="refused"):
    return FakeResponse(200, {'ok': False, 'code': code, 'error': message})


def _ledger(session, **kwargs):
    kwargs.setdefault('retry_backoff', 0)
    return RemoteLedger("http://ledger.test/", session=session, **kwargs)


def test_reads_unwrap_result():
    session = FakeSession(ok(7))
    ledger = _ledger(session)
    assert ledger.get_ballot_count(3) == 7
    assert session.calls == [("GET", "http://ledger.test/elections/3/ballot_count", None)]


def test_missing_election_reads_as_none():
    assert _ledger(FakeSession(ok(None))).get_election(1) is None


def test_writes_post_tagged_payloads():
    session = FakeSession(ok(4))
    ledger = _ledger(session)
    keypair = Ed25519Keypair.generate()
    c1, c2 = Point.base_mul(2), Point.base_mul(3)

    index = ledger.cast(1, b"\x05" * 32, c1, c2, keypair.public_key.raw, b"\x06" * 64)

    assert index == 4
    method, url, payload = session.calls[0]
    assert (method, url) == ("POST", "http://ledger.test/requests")
    assert payload['kind'] == "cast"
    assert payload['c1'] == c1.hex()
    assert payload['sig'] == "06" * 64


@pytest.mark.parametrize("code,kind", [(4, "issue"), (5, "cast")])
def test_refusal_codes_raise_typed_errors(code, kind):
    ledger = _ledger(FakeSession(refused(code)))
    with pytest.raises(DuplicateNullifier) as exc_info:
        ledger.is_cast_nullifier_used(0, b"\x00" * 32)
    assert exc_info.value.kind == kind


def test_refusals_are_not_retried():
    session = FakeSession(refused(3))
    with pytest.raises(OutsideVotingWindow):
        _ledger(session, max_retries=3).finalize_tally(0, [1, 2])
    assert len(session.calls) == 1


def test_server_errors_are_retried():
    session = FakeSession(FakeResponse(503, {}), ok(2))
    assert _ledger(session, max_retries=2).get_share_count(0) == 2
    assert len(session.calls) == 2


def test_connection_errors_exhaust_retries():
    session = FakeSession(requests.ConnectionError("down"))
    with pytest.raises(LedgerUnavailable):
        _ledger(session, max_retries=2).get_tally(0)
    assert len(session.calls) == 3


def test_malformed_responses_rejected():
    with pytest.raises(RecordValidationError):
        _ledger(FakeSession(FakeResponse(200, raw=True))).get_tally(0)
    with pytest.raises(RecordValidationError):
        _ledger(FakeSession(FakeResponse(200, [1, 2]))).get_tally(0)


def test_share_record_is_parsed(credentials):
    credential = credentials[0]
    pairs = [(Point.base_mul(5), Point.base_mul(5) * credential.share.secret_scalar)]
    signature = credential.identity.sign(shares_msg_hash(2, serialise_shares(pairs)))
    body = {
        'shares': [{'c1': c1.hex(), 'd': d.hex()} for c1, d in pairs],
        'kh_pk': credential.identity.public_key.hex(),
        'sig': signature.hex(),
    }
    record = _ledger(FakeSession(ok(body))).get_kh_shares(2, 1)
    assert record.kh_index == 1
    assert record.pairs == pairs
    assert record.kh_public_key == credential.identity.public_key


def test_circuit_breaker_stops_calls_until_recovery():
    clock = ManualClock(100.0)
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=clock)
    session = FakeSession(requests.Timeout("slow"))
    ledger = _ledger(session, max_retries=0, circuit_breaker=breaker)

    for _ in range(2):
        with pytest.raises(LedgerUnavailable):
            ledger.get_ballot_count(0)
    assert breaker.state == "OPEN"

    with pytest.raises(LedgerUnavailable):
        ledger.get_ballot_count(0)
    assert len(session.calls) == 2

    clock.advance(31)
    session.responses = [ok(5)]
    assert ledger.get_ballot_count(0) == 5
    assert breaker.state == "CLOSED"


def test_half_open_failure_reopens():
    clock = ManualClock(0.0)
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=clock)
    breaker.record_failure()
    assert not breaker.can_attempt()
    clock.advance(11)
    assert breaker.can_attempt()
    assert breaker.state == "HALF_OPEN"
    breaker.record_failure()
    assert breaker.state == "OPEN"
