"""
Issuance challenge sessions.

A session is opened when a voter starts issuance with a distributor and is
consumed at most once when the signed challenge comes back. Sessions are
keyed by (election id, identity id) and expire after a fixed TTL. The store
is always passed in explicitly.
"""

import hmac
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from threshold.errors import VotingProtocolError

logger = logging.getLogger(__name__)

CHALLENGE_SIZE = 32


class SessionError(VotingProtocolError):
    """Base exception for issuance session failures"""
    pass


class SessionNotFound(SessionError):
    pass


class SessionExpired(SessionError):
    pass


class ChallengeMismatch(SessionError):
    pass


@dataclass(frozen=True)
class IssuanceSession:
    election_id: int
    identity_id: str
    challenge: bytes
    created_at: float
    expires_at: float


class IssuanceSessionStore:

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.time):
        if ttl_seconds <= 0:
            raise ValueError("Session TTL must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[Tuple[int, str], IssuanceSession] = {}

    def open(self, election_id: int, identity_id: str) -> IssuanceSession:
        """Start a session with a fresh challenge, replacing any pending one"""
        now = self._clock()
        session = IssuanceSession(
            election_id=election_id,
            identity_id=identity_id,
            challenge=secrets.token_bytes(CHALLENGE_SIZE),
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        with self._lock:
            self._sessions[(election_id, identity_id)] = session
        return session

    def consume(self, election_id: int, identity_id: str, challenge: bytes) -> IssuanceSession:
        """Remove and return the session if the challenge matches and it is live"""
        key = (election_id, identity_id)
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                raise SessionNotFound(f"No issuance session for {identity_id[:16]} in election {election_id}")
            if self._clock() >= session.expires_at:
                del self._sessions[key]
                raise SessionExpired(f"Issuance session for {identity_id[:16]} expired")
            if not hmac.compare_digest(session.challenge, bytes(challenge)):
                raise ChallengeMismatch("Challenge does not match the open session")
            del self._sessions[key]
        return session

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, s in self._sessions.items() if now >= s.expires_at]
            for key in expired:
                del self._sessions[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired issuance sessions")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
